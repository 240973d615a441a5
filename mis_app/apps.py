# apps.py
from django.apps import AppConfig


class MisAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "mis_app"
    verbose_name = "College Management Information System"
