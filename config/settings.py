from pathlib import Path
import os
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"
APPEND_SLASH = True

ALLOWED_HOSTS = ["*", "localhost", "127.0.0.1"]


INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.admin",

    "rest_framework",
    "drf_spectacular",
    "corsheaders",

    "commons",   # health/request log
    "tenants",   # lojas / unidades isoladas
    "users",     # AUTH_USER_MODEL
    "fiscal.apps.FiscalConfig",
]


MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "commons.middleware.RequestLogMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "config.urls"

CORS_ALLOW_ALL_ORIGINS = True

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("PGDATABASE", "cpedados"),
        "USER": os.getenv("PGUSER", "postgres"),
        "PASSWORD": os.getenv("PGPASSWORD", ""),
        "HOST": os.getenv("PGHOST", "127.0.0.1"),
        "PORT": os.getenv("PGPORT", "5432"),
        "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        "TEST": {
            "NAME": "test_cpedados",
        },
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "users.User"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_CLASSES": ["rest_framework.throttling.UserRateThrottle"],
    "DEFAULT_THROTTLE_RATES": {
        "user": "60/min",
    },
}

from datetime import timedelta
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
}

LANGUAGE_CODE = "es-pe"
TIME_ZONE = "America/Lima"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

SPECTACULAR_SETTINGS = {
    "TITLE": "CPE Issuance API",
    "VERSION": "1.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

sentry_sdk.init(
    dsn=os.getenv("SENTRY_DSN", ""),
    integrations=[DjangoIntegration()],
    traces_sample_rate=0.1,
    send_default_pii=False,
)

# =============================
# Templates (admin)
# =============================
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "cpe-default",
    }
}

# =============================
# Emissão fiscal (CPE)
# =============================

# Só para sandbox/testes: pula o dígito verificador do RUC.
# Sempre gera log de warning quando ativo.
FISCAL_SKIP_TAX_ID_CHECK_DIGIT = os.getenv("FISCAL_SKIP_TAX_ID_CHECK_DIGIT", "false").lower() == "true"

# Credenciais SOL via ambiente têm prioridade sobre as do perfil
FISCAL_SOL_USER = os.getenv("FISCAL_SOL_USER", "")
FISCAL_SOL_PASSWORD = os.getenv("FISCAL_SOL_PASSWORD", "")

FISCAL_MAX_ATTEMPTS = int(os.getenv("FISCAL_MAX_ATTEMPTS", "5"))
FISCAL_BACKOFF_SECONDS = [60, 5 * 60, 15 * 60, 60 * 60, 120 * 60]
FISCAL_JOB_LEASE_SECONDS = int(os.getenv("FISCAL_JOB_LEASE_SECONDS", "300"))
FISCAL_POLL_DELAY_SECONDS = int(os.getenv("FISCAL_POLL_DELAY_SECONDS", "60"))
FISCAL_POLL_MAX_ATTEMPTS = int(os.getenv("FISCAL_POLL_MAX_ATTEMPTS", "10"))
FISCAL_WORKER_INTERVAL_SECONDS = int(os.getenv("FISCAL_WORKER_INTERVAL_SECONDS", "10"))

FISCAL_COLLABORATORS = {
    "xml_generator": "fiscal.collaborators.SimpleXmlGenerator",
    "certificate_loader": "fiscal.collaborators.DatabaseCertificateLoader",
    "signer": "fiscal.collaborators.MockSigner",
    "transport": "fiscal.collaborators.MockTransport",
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "class": "pythonjsonlogger.json.JsonFormatter",
        },
        "simple": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": "INFO",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": True,
        },
        "cpe.fiscal": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": False,
        },
        "cpe.auth": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "cpe.worker": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = 63072000
SECURE_CONTENT_TYPE_NOSNIFF = True
