from pathlib import Path
import os
import re
import tempfile
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

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Hosts allowed to reach the rendition status API
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Third-party
    "rest_framework",

    # Local
    "renditions",
]

MIDDLEWARE = [
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "transcoding.urls"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "transcoding"),
            "USER": env("DB_USER", "transcoding"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(env("DB_CONN_MAX_AGE", "60")),
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

# Timestamps on documents are UTC
TIME_ZONE = "UTC"
USE_TZ = True
USE_I18N = False

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "UNAUTHENTICATED_USER": None,
}

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
TRANSCODING_LOG_LEVEL = env("TRANSCODING_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "worker": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "worker"},
    },
    "loggers": {
        "renditions": {"handlers": ["console"], "level": TRANSCODING_LOG_LEVEL, "propagate": False},
        "celery": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# Encodes are long and CPU bound; keep them off the default queue
TRANSCODING_QUEUE = env("TRANSCODING_QUEUE", "transcoding")
CELERY_TASK_ROUTES = {"renditions.transcode_rendition": {"queue": TRANSCODING_QUEUE}}

# Cooperative deadline for one transcode; the hard limit leaves room for cleanup.
TRANSCODING_JOB_DEADLINE = env_int("TRANSCODING_JOB_DEADLINE", 60 * 60)  # seconds
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", TRANSCODING_JOB_DEADLINE + 5 * 60)

# -----------------------------------------------------
# Storage devices (S3/MinIO or a local tree)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or "http://127.0.0.1:9000"
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "media-local")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")

# "s3" for MinIO/S3, "local" for a directory tree on this host
TRANSCODING_STORAGE_DEVICE = env("TRANSCODING_STORAGE_DEVICE", "s3").lower()
TRANSCODING_LOCAL_STORAGE_ROOT = Path(env("TRANSCODING_LOCAL_STORAGE_ROOT", str(BASE_DIR / "storage")))

if TRANSCODING_STORAGE_DEVICE not in {"s3", "local"}:
    raise ImproperlyConfigured(
        f"TRANSCODING_STORAGE_DEVICE must be 's3' or 'local', got {TRANSCODING_STORAGE_DEVICE!r}"
    )

# -----------------------------------------------------
# Transcoding worker
# -----------------------------------------------------
TRANSCODING_WORKSPACE_ROOT = Path(
    env("TRANSCODING_WORKSPACE_ROOT", str(Path(tempfile.gettempdir()) / "transcoding"))
)
TRANSCODING_KEEP_WORKSPACE = env_bool("TRANSCODING_KEEP_WORKSPACE", False)

# Host embedded into HLS segment references
TRANSCODING_PUBLIC_BASE_URL = env("TRANSCODING_PUBLIC_BASE_URL", "http://127.0.0.1").rstrip("/")

FFMPEG_BINARY = env("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = env("FFPROBE_BINARY", "ffprobe")

# Per-(video, profile) lease; empty URL disables locking (single worker dev setups)
TRANSCODING_LOCK_URL = env("TRANSCODING_LOCK_URL", CELERY_BROKER_URL)
TRANSCODING_LOCK_TIMEOUT = env_int("TRANSCODING_LOCK_TIMEOUT", TRANSCODING_JOB_DEADLINE + 5 * 60)
TRANSCODING_LOCK_WAIT = env_int("TRANSCODING_LOCK_WAIT", 5)

# Encryption key ring: _APP_OPENSSL_KEY_V1, _APP_OPENSSL_KEY_V2, ...
OPENSSL_KEYS = {
    m.group(1): value
    for name, value in os.environ.items()
    if (m := re.fullmatch(r"_APP_OPENSSL_KEY_V(\d+)", name))
}
