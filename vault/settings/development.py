from .base import *  # noqa: F403

# Development overrides
DEBUG = True
ALLOWED_HOSTS = ["*"]
LOGGING_ALLOW_UNMASKED_CONTEXT = True
