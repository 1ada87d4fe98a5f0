from django.apps import AppConfig


class RenditionsConfig(AppConfig):
    name = "renditions"
    default_auto_field = "django.db.models.BigAutoField"
