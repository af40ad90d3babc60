"""
With these settings, tests run faster.
"""

import os

# Set dummy gateway credentials before base settings reads them.
# The gateway client is always mocked in tests; these never reach Pesapal.
os.environ.setdefault("PESAPAL_CONSUMER_KEY", "test-consumer-key")
os.environ.setdefault("PESAPAL_CONSUMER_SECRET", "test-consumer-secret")
os.environ.setdefault("PESAPAL_IPN_ID", "test-ipn-id")

from .base import *  # noqa: F403
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="Xr5oTzq2w8YyP0cQeHnM7kLbD3vS9gJ1aUfR6iE4tW2xZ8mN0pKcB7hG5jV3lO1s",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# DATABASES
# ------------------------------------------------------------------------------
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
        "ATOMIC_REQUESTS": True,
    },
}

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# BILLING
# ------------------------------------------------------------------------------
PESAPAL_BASE_URL = "https://pesapal.test/v3"
PESAPAL_CALLBACK_URL = "http://testserver/billing/pesapal/callback/"
PESAPAL_IPN_URL = "http://testserver/billing/pesapal/ipn/"
PESAPAL_TIMEOUT_SECONDS = 2.0
