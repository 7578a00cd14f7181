# config/settings_test.py
from .settings import *  # noqa: F401,F403

import os

# Testes rodam em SQLite por padrão; TEST_DB=postgres usa o banco real
# (necessário para os testes de concorrência com threads).
if os.getenv("TEST_DB", "sqlite") != "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "test_cpe.sqlite3",
            "OPTIONS": {"timeout": 20},
            "TEST": {"NAME": BASE_DIR / "test_cpe.sqlite3"},
        }
    }
else:
    DATABASES["default"]["CONN_MAX_AGE"] = 0

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_CLASSES": [],
}

SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

FISCAL_SOL_USER = ""
FISCAL_SOL_PASSWORD = ""
FISCAL_SKIP_TAX_ID_CHECK_DIGIT = False

# caplog captura pelo logger raiz
LOGGING = {
    **LOGGING,
    "loggers": {
        name: {**config, "propagate": True}
        for name, config in LOGGING["loggers"].items()
    },
}
