from django.contrib import admin

from .models import Video


@admin.register(Video)
class VideoAdmin(admin.ModelAdmin):
    # Operators use this to reconcile records the worker could not finalise
    list_display = ("id", "status", "original_filename", "updated_at", "processed_at")
    list_filter = ("status",)
    search_fields = ("id", "original_filename", "object_storage_key")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-updated_at",)
