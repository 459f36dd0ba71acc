"""Audit trail helpers."""

from __future__ import annotations

import logging

from django.contrib.auth.models import User
from django.db import DatabaseError, transaction

from research.models import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(user: User | None, action: str, details: str = '') -> None:
    """Create a log entry recording the specified action.

    Args:
        user: The user who performed the action.  May be None if the
            action occurred anonymously (e.g. through the JSON API).
        action: A short description of the action (e.g., "Created persona").
        details: Optional additional information about the action.
    """
    logger.info('%s: %s', action, details)
    if user is not None and not user.is_authenticated:
        user = None
    try:
        with transaction.atomic():
            ActivityLog.objects.create(user=user, action=action, details=details)
    except DatabaseError:
        # An audit failure never aborts the calling action.
        logger.exception('Could not record activity %r', action)
