import os

os.environ.setdefault("USE_SQLITE_FOR_TESTS", "1")

from .settings import *  # noqa: F401,F403


PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

ALLOWED_HOSTS = [*ALLOWED_HOSTS, "testserver"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_CLASSES": (),
}

MATCHING_WEIGHTS = None
NOTIFIER_BACKEND = "core.notifications.LoggingNotifier"

LOGGING["loggers"]["core"]["level"] = os.environ.get("LOG_LEVEL", "WARNING")
