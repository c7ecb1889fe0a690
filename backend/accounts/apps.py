from django.apps import AppConfig


class AccountConfig(AppConfig):
    """
    Contractor and client profiles
    """
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'accounts'
    verbose_name = 'Profiles'
