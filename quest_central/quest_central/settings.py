"""Django settings for the quest_central project.

Only the pieces the settlement backend needs are configured: the ``quests``
app, a JSON API (no templates or admin), Celery for background settlement and
the OpenRouter-backed scoring oracle.  Everything deployment specific is read
from the environment.  By default we use SQLite for ease of setup.
"""
from __future__ import annotations

import os
from pathlib import Path

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "change-me-to-a-unique-string")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DJANGO_DEBUG", "1").lower() not in {"0", "false", "off"}

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]


# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'quests',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'quests.middleware.APIRateLimitMiddleware',
    'quests.middleware.PartyAPIKeyMiddleware',
]

ROOT_URLCONF = 'quest_central.urls'

WSGI_APPLICATION = 'quest_central.wsgi.application'


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv("QUEST_DB_PATH", str(BASE_DIR / 'db.sqlite3')),
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = False

USE_TZ = True


# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Logging

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "quests": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "celery": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

# Environment variables

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "anthropic/claude-sonnet-4.5")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_DEFAULT_MAX_TOKENS = int(os.getenv("OPENROUTER_DEFAULT_MAX_TOKENS", "256"))
OPENROUTER_TITLE = os.getenv("OPENROUTER_TITLE", "Quest Central Oracle")
OPENROUTER_REFERRER = os.getenv("OPENROUTER_REFERRER")
ORACLE_DAILY_REQUEST_LIMIT = int(os.getenv("ORACLE_DAILY_REQUEST_LIMIT", "1000"))
ORACLE_TIMEOUT_SECONDS = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "20"))
ORACLE_FAILURE_BACKOFF_SECONDS = int(os.getenv("ORACLE_FAILURE_BACKOFF_SECONDS", "300"))

# Settlement
SETTLEMENT_MAX_RETRIES = int(os.getenv("SETTLEMENT_MAX_RETRIES", "5"))
SETTLEMENT_STALE_SECONDS = int(os.getenv("SETTLEMENT_STALE_SECONDS", "300"))
SETTLEMENT_SWEEP_INTERVAL_SECONDS = int(os.getenv("SETTLEMENT_SWEEP_INTERVAL_SECONDS", "120"))

# Public API quota per identifier per day (0 disables the limit)
API_DAILY_LIMIT = int(os.getenv("API_DAILY_LIMIT", "5000"))

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND") or None
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "0").lower() in {"1", "true", "on"}
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_TASK_ROUTES = {
    "quests.tasks.settle_attempt": {"queue": "settlement"},
    "quests.tasks.sweep_unscored_attempts": {"queue": "settlement"},
}
