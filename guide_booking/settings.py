from pathlib import Path

import structlog

# Optionally load .env file if using python-dotenv
from dotenv import load_dotenv

from guide_booking.env_helper import get_bool_env, get_env

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY
SECRET_KEY = get_env("DJANGO_SECRET_KEY", "django-insecure-replace-me-in-production")
DEBUG = get_bool_env("DJANGO_DEBUG", "False")

allowed_hosts_env = get_env("DJANGO_ALLOWED_HOSTS", "")
if allowed_hosts_env:
    ALLOWED_HOSTS = [host.strip() for host in allowed_hosts_env.split(",") if host.strip()]
else:
    ALLOWED_HOSTS = ["localhost", "127.0.0.1", "[::1]"]


# Application definition
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "guide_booking.notifications",
]

MIDDLEWARE = []

# Database configuration (SQLite by default, PostgreSQL via DB_ENGINE)
DATABASES = {
    "default": {
        "ENGINE": get_env("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": get_env("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": get_env("DB_USER", ""),
        "PASSWORD": get_env("DB_PASSWORD", ""),
        "HOST": get_env("DB_HOST", ""),
        "PORT": get_env("DB_PORT", ""),
    }
}

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = get_env("DJANGO_TIME_ZONE", "Asia/Dhaka")
USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Celery / Redis
REDIS_HOST = get_env("REDIS_HOST", "redis")
REDIS_PASSWORD = get_env("REDIS_PASSWORD", "")
_redis_auth = f":{REDIS_PASSWORD}@" if REDIS_PASSWORD else ""

CELERY_BROKER_URL = get_env("CELERY_BROKER_URL", f"redis://{_redis_auth}{REDIS_HOST}:6379/0")
CELERY_RESULT_BACKEND = get_env("CELERY_RESULT_BACKEND", f"redis://{_redis_auth}{REDIS_HOST}:6379/1")
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_RESULT_SERIALIZER = "json"

# Django cache configuration
DEFAULT_CACHE_URL = get_env("CACHE_URL", get_env("REDIS_CACHE_URL", ""))

if DEFAULT_CACHE_URL:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": DEFAULT_CACHE_URL,
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "guide-booking-cache",
        }
    }

# Notification history (dedup store)
# "database" keeps entries in the StoredValue table, "cache" in CACHES["default"]
NOTIFICATION_HISTORY_BACKEND = get_env("NOTIFICATION_HISTORY_BACKEND", "database")
BOOKING_STATUS_HISTORY_PREFIX = get_env(
    "BOOKING_STATUS_HISTORY_PREFIX", "lastNotifiedBookingStatuses"
)
NEW_BOOKING_HISTORY_PREFIX = get_env("NEW_BOOKING_HISTORY_PREFIX", "new_bookings_notified")

# Realtime notification feed
# "memory" is process-local (development, tests), "firestore" is the hosted feed
NOTIFICATION_FEED_BACKEND = get_env("NOTIFICATION_FEED_BACKEND", "memory")
GUIDE_NOTIFICATIONS_COLLECTION = get_env("GUIDE_NOTIFICATIONS_COLLECTION", "guide-notifications")
USER_NOTIFICATIONS_COLLECTION = get_env("USER_NOTIFICATIONS_COLLECTION", "user-notifications")
CONNECTION_TEST_COLLECTION = get_env("CONNECTION_TEST_COLLECTION", "connection-test")

# Document store (bookings)
FIRESTORE_PROJECT_ID = get_env("FIRESTORE_PROJECT_ID", "")
FIRESTORE_DATABASE = get_env("FIRESTORE_DATABASE", "(default)")
BOOKINGS_COLLECTION = get_env("BOOKINGS_COLLECTION", "bookings")

# Local alerts (Expo push service)
EXPO_PUSH_URL = get_env("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_PUSH_TIMEOUT = int(get_env("EXPO_PUSH_TIMEOUT", "10"))
EXPO_ACCESS_TOKEN = get_env("EXPO_ACCESS_TOKEN", "")

# Publishing retries for business events (booking request / response)
NOTIFICATION_PUBLISH_MAX_RETRIES = int(get_env("NOTIFICATION_PUBLISH_MAX_RETRIES", "3"))
NOTIFICATION_PUBLISH_RETRY_DELAY = int(get_env("NOTIFICATION_PUBLISH_RETRY_DELAY", "30"))

# Logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "structlog.stdlib.ProcessorFormatter",
            "processor": structlog.processors.JSONRenderer(),
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": "INFO",
        }
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "guide_booking": {
            "handlers": ["console"],
            "level": get_env("GUIDE_BOOKING_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "shared": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
