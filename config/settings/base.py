"""
Django settings for the Autoparts Commerce Platform - Base Configuration.
Pricing, configurable products, vouchers and loyalty tiers.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
DJANGO_APPS: list[str] = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
]

THIRD_PARTY_APPS: list[str] = [
    "django_q",  # Scheduled jobs (monthly spend reset)
]

LOCAL_APPS: list[str] = [
    "apps.common",
    "apps.customers",
    "apps.pricing",
    "apps.products",
    "apps.promotions",
    "apps.wallet",
    "apps.checkout",
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

WSGI_APPLICATION = "config.wsgi.application"

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "autoparts"),
        "USER": os.environ.get("DB_USER", "autoparts"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "development_password"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": 60,
        "OPTIONS": {
            "application_name": "autoparts_commerce",
            # Store lookups must fail fast instead of blocking checkout
            "connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT", "5")),
        },
    }
}

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

# Store operating timezone drives the monthly spend boundary (see apps.promotions.config)
STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "Asia/Kuala_Lumpur")

LANGUAGE_CODE = "en"
TIME_ZONE = STORE_TIMEZONE
USE_I18N = True
USE_TZ = True

# ===============================================================================
# CACHE CONFIGURATION (Database-backed cache - no Redis needed) 💾
# ===============================================================================

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.db.DatabaseCache",
        "LOCATION": "django_cache_table",
        "KEY_PREFIX": "autoparts",
        "OPTIONS": {
            "MAX_ENTRIES": 10000,
            "CULL_FREQUENCY": 3,
        },
        "TIMEOUT": 300,
        "VERSION": 1,
    }
}

# ===============================================================================
# SESSION SETTINGS
# ===============================================================================

SESSION_ENGINE = "django.contrib.sessions.backends.db"
SESSION_COOKIE_AGE = 86400  # 24 hours
SESSION_COOKIE_HTTPONLY = True

# ===============================================================================
# STORE BUSINESS CONFIGURATION 🛒
# ===============================================================================

# Base currency for all amounts handled by the pricing engine (stored as cents)
STORE_CURRENCY = os.environ.get("STORE_CURRENCY", "MYR")

# Pricing context cache lifetime; matches the session length by default
PRICING_CONTEXT_CACHE_TIMEOUT = int(os.environ.get("PRICING_CONTEXT_CACHE_TIMEOUT", str(SESSION_COOKIE_AGE)))

# Loyalty points earned per currency unit of completed order value
LOYALTY_POINTS_PER_CURRENCY_UNIT = os.environ.get("LOYALTY_POINTS_PER_CURRENCY_UNIT", "1")

# Warn customers when a voucher is about to expire
VOUCHER_EXPIRY_WARNING_DAYS = int(os.environ.get("VOUCHER_EXPIRY_WARNING_DAYS", "3"))

# ===============================================================================
# DEFAULT AUTO FIELD
# ===============================================================================

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY")
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings

    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2,
    )
    SECRET_KEY = "django-insecure-dev-key-only-change-in-production-or-tests"  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith("django-insecure-"):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Generate a secure key: python -c 'from django.core.management.utils import get_random_secret_key; print(get_random_secret_key())'"
        )


SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"

# ===============================================================================
# DJANGO-Q2 ASYNC TASK PROCESSING 🚀
# ===============================================================================

Q_CLUSTER_BASE = {
    "name": "autoparts-cluster",
    "timeout": 300,  # 5 minutes
    "retry": 600,  # 10 minutes retry delay
    "save_limit": 1000,
    "catch_up": False,  # Don't run missed scheduled tasks
    "orm": "default",
    "bulk": 10,
    "queue_limit": 100,
}

Q_CLUSTER = {
    **Q_CLUSTER_BASE,
    "workers": 2,
    "recycle": 500,
    "sync": False,
}

# ===============================================================================
# LOGGING CONFIGURATION 📝
# ===============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
