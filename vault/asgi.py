"""ASGI config for the vault project."""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "vault.settings.development")

application = get_asgi_application()
