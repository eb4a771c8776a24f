"""Base settings for the resource vault project."""

import logging
from pathlib import Path

import environ

from common.logging import configure_logging


logger = logging.getLogger(__name__)

# This file is at vault/settings/base.py, so project root is three parents up
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# django-environ setup
env = environ.Env()
environ.Env.read_env(BASE_DIR / ".env")

configure_logging()


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY", default="insecure-local-development-key")

DEBUG = env.bool("DEBUG", default=False)

ALLOWED_HOSTS = env.list(
    "ALLOWED_HOSTS",
    default=["localhost", ".localhost", "testserver"],
)

LOGGING_ALLOW_UNMASKED_CONTEXT = env.bool(
    "LOGGING_ALLOW_UNMASKED_CONTEXT", default=False
)

# Binary storage for asset bytes
OBJECT_STORE_BACKEND = env("OBJECT_STORE_BACKEND", default="filesystem")
OBJECT_STORE_BASE_PATH = env(
    "OBJECT_STORE_BASE_PATH", default=str(BASE_DIR / ".vault_store")
)
ASSET_BUCKET = env("ASSET_BUCKET", default="assets")
S3_ENDPOINT_URL = env("S3_ENDPOINT_URL", default=None)
S3_REGION_NAME = env("S3_REGION_NAME", default=None)
S3_ACCESS_KEY_ID = env("S3_ACCESS_KEY_ID", default=None)
S3_SECRET_ACCESS_KEY = env("S3_SECRET_ACCESS_KEY", default=None)

# Upper bound for a single uploaded request body
DATA_UPLOAD_MAX_MEMORY_SIZE = env.int(
    "DATA_UPLOAD_MAX_MEMORY_SIZE", default=50 * 1024 * 1024
)

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "rest_framework",
    "drf_spectacular",
    "common",
    "resources.apps.ResourcesConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "common.middleware.RequestLogContextMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "vault.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "vault.wsgi.application"

# Database
DATABASES = {
    "default": env.db("DATABASE_URL", default="postgres://localhost:5432/vault")
}

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "EXCEPTION_HANDLER": "resources.errors.api_exception_handler",
}

SPECTACULAR_SETTINGS = {
    "TITLE": env("API_DOCS_TITLE", default="Resource Vault API"),
    "DESCRIPTION": "Schema-described resources with binary assets.",
    "VERSION": env("API_DOCS_VERSION_LABEL", default="1.0.0"),
    "SERVE_INCLUDE_SCHEMA": False,
}
