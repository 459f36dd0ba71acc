"""Data models for the Unheard V2 application.

Four record types back the application: the built-in ``User`` account,
``Persona`` profiles owned by a user, ``Experiment`` bundles that pair a
prompt with a set of personas, and ``ExperimentResponse`` rows holding the
text a persona produced for an experiment.  ``ActivityLog`` keeps an audit
trail of user actions.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


def normalise_tags(raw: Any) -> List[str]:
    """Return a de-duplicated list of trimmed, non-empty tag strings.

    Accepts either a list of strings or a single comma/semicolon separated
    string, which is how tags arrive from HTML inputs and workbook cells.
    """

    if raw is None or raw == '':
        return []
    if isinstance(raw, str):
        parts = raw.replace(';', ',').split(',')
    elif isinstance(raw, (list, tuple)):
        parts = list(raw)
    else:
        raise ValidationError('Tags must be a list of strings.')
    tags: List[str] = []
    for part in parts:
        if not isinstance(part, str):
            raise ValidationError('Tags must be a list of strings.')
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def whole_number(value: Any, field: str) -> Any:
    """Return a float holding a whole number as ``int``.

    Booleans and fractional or non-finite floats raise a ValidationError
    keyed by ``field``.  Other values are left for the model field to
    parse.
    """

    if isinstance(value, bool) or (
        isinstance(value, float) and not (math.isfinite(value) and value.is_integer())
    ):
        raise ValidationError({field: f"{value!r} is not a whole number."})
    if isinstance(value, float):
        return int(value)
    return value


class ActivityLog(models.Model):
    """Tracks user actions within the application.

    Each log entry records the user who performed the action, a short
    description of the action, optional details and the timestamp.
    """

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='activity_logs')
    action = models.CharField(max_length=255)
    details = models.TextField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.timestamp:%Y-%m-%d %H:%M:%S} - {self.user}: {self.action}"


class Persona(models.Model):
    """A synthetic respondent profile.

    The optional demographic and tag fields together make up the persona's
    ``attributes``.  Tag lists are stored as JSON arrays of strings so the
    schema stays portable between SQLite and PostgreSQL.
    """

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=500)
    age = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(1)])
    gender = models.CharField(max_length=50, blank=True, default='')
    occupation = models.CharField(max_length=100, blank=True, default='')
    interests = models.JSONField(default=list, blank=True)
    pain_points = models.JSONField(default=list, blank=True)
    goals = models.JSONField(default=list, blank=True)
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='personas')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    ATTRIBUTE_FIELDS = ('age', 'gender', 'occupation', 'interests', 'pain_points', 'goals')

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['owner', '-created_at'], name='persona_owner_created_idx'),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def clean(self) -> None:
        errors: Dict[str, str] = {}
        for field in ('interests', 'pain_points', 'goals'):
            try:
                setattr(self, field, normalise_tags(getattr(self, field)))
            except ValidationError as exc:
                errors[field] = exc.messages[0]
        self.gender = (self.gender or '').strip()
        self.occupation = (self.occupation or '').strip()
        if errors:
            raise ValidationError(errors)

    @property
    def attributes(self) -> Dict[str, Any]:
        """Return the populated attribute values, omitting empty ones."""

        values: Dict[str, Any] = {}
        for field in self.ATTRIBUTE_FIELDS:
            value = getattr(self, field)
            if value in (None, '', []):
                continue
            values[field] = value
        return values


class Experiment(models.Model):
    """A prompt sent to a set of personas."""

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        RUNNING = 'running', 'Running'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'

    title = models.CharField(max_length=200)
    description = models.CharField(max_length=1000)
    prompt = models.CharField(max_length=2000)
    personas = models.ManyToManyField(Persona, related_name='experiments')
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='experiments')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['owner', '-created_at'], name='experiment_owner_created_idx'),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.title

    def apply_status(self, status: str) -> None:
        """Set ``status`` and stamp ``completed_at`` when it becomes completed.

        Leaving the completed state keeps the earlier timestamp.  The caller
        is responsible for saving.
        """

        self.status = status
        if status == self.Status.COMPLETED:
            self.completed_at = timezone.now()


class ExperimentResponse(models.Model):
    """Text produced by a persona for an experiment.

    Sentiment and generation metadata are optional.  A response belongs to
    its experiment and is removed with it; deleting the persona leaves the
    response in place with no persona attached.
    """

    class SentimentLabel(models.TextChoices):
        POSITIVE = 'positive', 'Positive'
        NEGATIVE = 'negative', 'Negative'
        NEUTRAL = 'neutral', 'Neutral'

    experiment = models.ForeignKey(Experiment, on_delete=models.CASCADE, related_name='responses')
    persona = models.ForeignKey(
        Persona,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='responses',
    )
    content = models.TextField()
    sentiment_score = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-1.0), MaxValueValidator(1.0)],
    )
    sentiment_label = models.CharField(
        max_length=20,
        choices=SentimentLabel.choices,
        blank=True,
        default='',
    )
    tokens = models.PositiveIntegerField(null=True, blank=True)
    duration = models.FloatField(null=True, blank=True)
    model_name = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self) -> str:  # pragma: no cover
        return f"Response<{self.experiment_id}:{self.persona_id}>"

    def clean(self) -> None:
        # Score and label travel together; half a sentiment is rejected.
        has_score = self.sentiment_score is not None
        has_label = bool(self.sentiment_label)
        if has_score != has_label:
            raise ValidationError({
                'sentiment_label' if has_score else 'sentiment_score':
                    'Sentiment needs both a score and a label.',
            })

    @property
    def sentiment(self) -> Dict[str, Any] | None:
        if self.sentiment_score is None or not self.sentiment_label:
            return None
        return {'score': self.sentiment_score, 'label': self.sentiment_label}

    @property
    def metadata(self) -> Dict[str, Any] | None:
        values: Dict[str, Any] = {}
        if self.tokens is not None:
            values['tokens'] = self.tokens
        if self.duration is not None:
            values['duration'] = self.duration
        if self.model_name:
            values['model'] = self.model_name
        return values or None
