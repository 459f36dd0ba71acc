"""Application configuration for the research app."""

from __future__ import annotations

from django.apps import AppConfig


class ResearchConfig(AppConfig):
    """AppConfig for personas, experiments and responses."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'research'
    verbose_name = 'Research'
