from pathlib import Path
import os
import tempfile
from urllib.parse import quote

from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

def env_list(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "127.0.0.1,localhost")

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",

    # Local
    "videos",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "video_worker.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "video_processing"),
            "USER": env("DB_USER", "video_user"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": env_int("DB_CONN_MAX_AGE", 60),  # keep-alive
            "CONN_HEALTH_CHECKS": True,
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
        "rest_framework.renderers.BrowsableAPIRenderer" if DEBUG else "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
}

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "worker": {
            "format": "%(asctime)s %(levelname)-8s [%(process)d] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "worker",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "videos": {"level": LOG_LEVEL},
        "kombu": {"level": "WARNING"},
        "botocore": {"level": "WARNING"},
    },
}

# -----------------------------------------------------
# RabbitMQ (kombu)
# -----------------------------------------------------
def _broker_url() -> str:
    explicit = os.getenv("RABBITMQ_URL")
    if explicit:
        return explicit
    user = quote(env("RABBITMQ_USER", "guest"), safe="")
    password = quote(env("RABBITMQ_PASSWORD", "guest"), safe="")
    host = env("RABBITMQ_HOST", "localhost")
    port = env_int("RABBITMQ_NODE_PORT", 5672)
    vhost = env("RABBITMQ_VHOST", "/")
    if not vhost.startswith("/"):
        raise ImproperlyConfigured("RABBITMQ_VHOST must start with '/'")
    # kombu treats the path after the port as the vhost name, so "/" becomes "//"
    return f"amqp://{user}:{password}@{host}:{port}/{vhost.lstrip('/') or '/'}"

BROKER_URL = _broker_url()
# 0 disables heartbeats: a running job blocks the connection thread for its whole duration
BROKER_HEARTBEAT = env_int("RABBITMQ_HEARTBEAT", 0)

VIDEO_EVENTS_EXCHANGE = env("VIDEO_EVENTS_EXCHANGE", "video_events_topic")
VIDEO_UPLOAD_COMPLETED_ROUTING_KEY = env("VIDEO_UPLOAD_COMPLETED_ROUTING_KEY", "video.upload.completed")
VIDEO_PROCESSING_COMPLETED_ROUTING_KEY = env("VIDEO_PROCESSING_COMPLETED_ROUTING_KEY", "video.processing.completed")
VIDEO_PROCESSING_FAILED_ROUTING_KEY = env("VIDEO_PROCESSING_FAILED_ROUTING_KEY", "video.processing.failed")

VIDEO_PROCESSING_QUEUE = env("VIDEO_PROCESSING_QUEUE", "video_processing_queue")
VIDEO_PROCESSING_DLX = env("VIDEO_PROCESSING_DLX", "video_processing_dlx")
VIDEO_PROCESSING_DLQ = env("VIDEO_PROCESSING_DLQ", "video_processing_dlq")

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None  # None -> AWS default endpoint
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL)
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "media-local")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local
S3_PRESIGN_EXPIRE_SECONDS = env_int("S3_PRESIGN_EXPIRE_SECONDS", 900)
S3_CONNECT_TIMEOUT = env_int("S3_CONNECT_TIMEOUT", 10)
S3_READ_TIMEOUT = env_int("S3_READ_TIMEOUT", 120)
S3_MAX_ATTEMPTS = env_int("S3_MAX_ATTEMPTS", 3)

S3_PROCESSED_PREFIX = env("S3_PROCESSED_PREFIX", "processed/")

# -----------------------------------------------------
# Processing
# -----------------------------------------------------
# Highest first; validated against the presets in videos.ffmpeg
PROCESSING_RESOLUTIONS = env_list("PROCESSING_RESOLUTIONS", "1080p,720p,480p")
THUMBNAIL_TIMESTAMP = env("THUMBNAIL_TIMESTAMP", "00:00:01")
THUMBNAIL_SIZE = env("THUMBNAIL_SIZE", "320x180")

FFMPEG_BINARY = env("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = env("FFPROBE_BINARY", "ffprobe")
FFMPEG_TIMEOUT_SECONDS = env_int("FFMPEG_TIMEOUT_SECONDS", 60 * 60)

VIDEO_WORKER_TEMP_DIR = Path(env("VIDEO_WORKER_TEMP_DIR", str(Path(tempfile.gettempdir()) / "video-processing-service")))
