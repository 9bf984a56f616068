"""
History App Configuration
"""

from django.apps import AppConfig


class HistoryConfig(AppConfig):
    """App configuration for medical history update authorization"""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'clinic_backend.history'
    verbose_name = 'History (Medical History Updates)'
