"""
Production settings for the Autoparts Commerce Platform
Security-first configuration for the live store.
"""

import os

from .base import *  # noqa: F403

# ===============================================================================
# PRODUCTION SECURITY 🔒
# ===============================================================================

DEBUG = False

validate_production_secret_key()  # noqa: F405

ALLOWED_HOSTS = [host.strip() for host in os.environ.get("ALLOWED_HOSTS", "").split(",") if host.strip()]

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_SSL_REDIRECT = os.environ.get("SECURE_SSL_REDIRECT", "true") == "true"
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = 31536000  # 1 year
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

# ===============================================================================
# PRODUCTION DATABASE
# ===============================================================================

DATABASES["default"]["CONN_MAX_AGE"] = int(os.environ.get("DB_CONN_MAX_AGE", "600"))  # noqa: F405
DATABASES["default"]["OPTIONS"]["sslmode"] = os.environ.get("DB_SSLMODE", "require")  # noqa: F405

# ===============================================================================
# DJANGO-Q2 PRODUCTION CLUSTER 🚀
# ===============================================================================

Q_CLUSTER = {
    **Q_CLUSTER_BASE,  # noqa: F405
    "workers": int(os.environ.get("Q_CLUSTER_WORKERS", "4")),
    "recycle": 500,
    "sync": False,
}

# ===============================================================================
# PRODUCTION LOGGING 📝
# ===============================================================================

LOGGING["loggers"]["apps"]["level"] = os.environ.get("LOG_LEVEL", "INFO")  # noqa: F405
