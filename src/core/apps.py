"""App configuration for shared project plumbing."""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Core holds settings, URLs, middleware, logging, and the error taxonomy."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "core"
