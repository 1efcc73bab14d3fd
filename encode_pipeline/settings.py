from pathlib import Path
import os
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

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
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
    "ingest",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "encode_pipeline.urls"

WSGI_APPLICATION = "encode_pipeline.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "encode_pipeline"),
            "USER": env("DB_USER", "encode_user"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": env_int("DB_CONN_MAX_AGE", 60),  # keep-alive
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
# Cache (holds the notification channel provisioning lock;
# must be shared between workers in production)
# -----------------------------------------------------
if os.getenv("CACHE_URL"):
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": env("CACHE_URL"),
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

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
LOG_LEVEL = env("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "ingest": {"level": LOG_LEVEL, "propagate": True},
        # botocore is very chatty at DEBUG
        "botocore": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 60 * 15)  # seconds
# Messages are redelivered if a worker dies mid-task.
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_TASK_ROUTES = {
    "ingest.tasks.submit_encode_job": {"queue": env("ENCODE_INPUT_QUEUE", "encode-input")},
}

# Retry policy for the submission task
SUBMISSION_MAX_RETRIES = env_int("SUBMISSION_MAX_RETRIES", 5)
SUBMISSION_RETRY_BACKOFF = env_int("SUBMISSION_RETRY_BACKOFF", 30)  # seconds, doubled per attempt
SUBMISSION_RETRY_BACKOFF_MAX = env_int("SUBMISSION_RETRY_BACKOFF_MAX", 60 * 10)

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or "http://127.0.0.1:9000"  # fine for local
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL)
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "media-local")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local
S3_PRESIGN_EXPIRE_SECONDS = env_int("S3_PRESIGN_EXPIRE_SECONDS", 60 * 60 * 6)  # engine ingest can be slow

# Uploads land under this prefix; the queue message carries only the name after it.
ENCODE_INPUT_PREFIX = os.getenv("ENCODE_INPUT_PREFIX", "encoding-input/")

# -----------------------------------------------------
# Encoding engine
# -----------------------------------------------------
ENCODING_ENGINE_URL = os.getenv("ENCODING_ENGINE_URL", "http://127.0.0.1:8081/api/")
ENCODING_ENGINE_TOKEN = os.getenv("ENCODING_ENGINE_TOKEN")
ENCODING_ENGINE_TIMEOUT = env_int("ENCODING_ENGINE_TIMEOUT", 30)  # seconds

ENCODE_JOB_NAME = os.getenv("ENCODE_JOB_NAME", "MES encode from input container - ABR streaming")
ENCODE_TASK_NAME = os.getenv("ENCODE_TASK_NAME", "encoding task")
ENCODE_PROCESSOR_NAME = os.getenv("ENCODE_PROCESSOR_NAME", "Media Encoder Standard")
ENCODE_PRESET = os.getenv("ENCODE_PRESET", "Content Adaptive Multiple Bitrate MP4")
ENCODE_TASK_PRIORITY = env_int("ENCODE_TASK_PRIORITY", 100)

# -----------------------------------------------------
# Completion webhook
# Must point at the deployed webhook stage. Missing values are only
# reported when the notification endpoint has to be created.
# -----------------------------------------------------
NOTIFICATION_ENDPOINT_NAME = os.getenv("NOTIFICATION_ENDPOINT_NAME", "FunctionWebHook")
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
WEBHOOK_SIGNING_KEY = os.getenv("WEBHOOK_SIGNING_KEY", "")  # base64, at least 32 bytes decoded
CHANNEL_LOCK_TIMEOUT = env_int("CHANNEL_LOCK_TIMEOUT", 30)  # seconds
