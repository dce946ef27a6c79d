from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Video",
            fields=[
                ("id", models.CharField(max_length=36, primary_key=True, serialize=False)),
                ("original_filename", models.CharField(max_length=255)),
                ("object_storage_key", models.CharField(blank=True, default="", max_length=1024)),
                ("mime_type", models.CharField(blank=True, default="", max_length=100)),
                ("size_bytes", models.PositiveBigIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING_UPLOAD", "Pending Upload"),
                            ("UPLOADED", "Uploaded"),
                            ("UPLOAD_FAILED", "Upload Failed"),
                            ("PROCESSING", "Processing"),
                            ("READY", "Ready"),
                            ("ERROR", "Error"),
                        ],
                        default="PENDING_UPLOAD",
                        max_length=16,
                    ),
                ),
                ("outputs", models.JSONField(blank=True, default=dict)),
                ("metadata", models.JSONField(blank=True, null=True)),
                ("error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "videos",
                "indexes": [models.Index(fields=["status"], name="videos_status_idx")],
            },
        ),
    ]
