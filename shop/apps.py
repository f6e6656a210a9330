from django.apps import AppConfig

class ShopConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'shop'
    verbose_name = 'Shop'

    def ready(self):
        # Ensure signals are loaded
        from . import signals  # noqa: F401
