"""Template filters for the research app."""

from __future__ import annotations

from django import template

register = template.Library()

STATUS_BADGES = {
    'draft': 'bg-secondary-subtle text-secondary-emphasis',
    'running': 'bg-primary-subtle text-primary-emphasis',
    'completed': 'bg-success-subtle text-success-emphasis',
    'failed': 'bg-danger-subtle text-danger-emphasis',
}

SENTIMENT_BADGES = {
    'positive': 'bg-success',
    'negative': 'bg-danger',
    'neutral': 'bg-secondary',
}


@register.filter
def status_badge(status: str) -> str:
    """Return the badge classes for an experiment status.

    Usage::

        <span class="badge {{ experiment.status|status_badge }}">
    """
    return STATUS_BADGES.get(status, STATUS_BADGES['draft'])


@register.filter
def sentiment_badge(label: str) -> str:
    return SENTIMENT_BADGES.get(label, 'bg-light text-dark')
