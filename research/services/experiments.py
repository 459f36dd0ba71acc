"""Experiment persistence operations.

Besides plain inserts and patches this module owns the two experiment
rules: a transition to ``completed`` stamps ``completed_at``, and deleting
an experiment removes its responses in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from research.models import Experiment, ExperimentResponse, Persona
from research.services.activity import log_activity

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'description', 'prompt')


def _resolve_personas(owner_id: int, persona_ids: Iterable[Any] | None) -> List[Persona]:
    """Load the personas for ``persona_ids``, all owned by ``owner_id``."""

    if persona_ids is None or isinstance(persona_ids, (str, bytes)):
        raise ValidationError({'personas': 'Personas must be a list of ids.'})
    try:
        ids = list(dict.fromkeys(int(pk) for pk in persona_ids))
    except (TypeError, ValueError):
        raise ValidationError({'personas': 'Persona ids must be integers.'})
    if not ids:
        raise ValidationError({'personas': 'At least one persona must be selected.'})
    personas = list(Persona.objects.filter(owner_id=owner_id, pk__in=ids))
    found = {persona.pk for persona in personas}
    missing = [str(pk) for pk in ids if pk not in found]
    if missing:
        raise ValidationError({'personas': f"Unknown persona id(s): {', '.join(missing)}."})
    return personas


def _validate_status(status: Any) -> str:
    if status not in Experiment.Status.values:
        raise ValidationError(
            {'status': f"Status must be one of: {', '.join(Experiment.Status.values)}."}
        )
    return status


def list_experiments_by_user(user_id: int) -> QuerySet[Experiment]:
    """Return the user's experiments, newest first."""

    return (
        Experiment.objects.filter(owner_id=user_id)
        .prefetch_related('personas')
        .order_by('-created_at', '-id')
    )


def list_experiments_by_status(status: str) -> QuerySet[Experiment]:
    """Return experiments in ``status``, newest first."""

    _validate_status(status)
    return (
        Experiment.objects.filter(status=status)
        .prefetch_related('personas')
        .order_by('-created_at', '-id')
    )


def get_experiment(experiment_id: int) -> Experiment | None:
    return Experiment.objects.filter(pk=experiment_id).prefetch_related('personas').first()


def create_experiment(
    owner: User,
    *,
    title: str,
    description: str,
    prompt: str,
    persona_ids: Iterable[Any],
    actor: User | None = None,
) -> Experiment:
    """Insert a draft experiment for ``owner`` covering ``persona_ids``."""

    experiment = Experiment(
        owner=owner,
        title=title,
        description=description,
        prompt=prompt,
        status=Experiment.Status.DRAFT,
    )
    experiment.full_clean()
    personas = _resolve_personas(owner.pk, persona_ids)
    with transaction.atomic():
        experiment.save()
        experiment.personas.set(personas)
    log_activity(actor, 'Created experiment', f"Experiment {experiment.pk}: {experiment.title}")
    return experiment


def update_experiment(experiment_id: int, *, actor: User | None = None, **changes: Any) -> Experiment:
    """Patch title, description, prompt and/or the persona set."""

    unknown = set(changes) - {*EDITABLE_FIELDS, 'persona_ids'}
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}.")
    experiment = Experiment.objects.get(pk=experiment_id)
    for field in EDITABLE_FIELDS:
        if field in changes:
            setattr(experiment, field, changes[field])
    experiment.full_clean()
    personas = None
    if 'persona_ids' in changes:
        personas = _resolve_personas(experiment.owner_id, changes['persona_ids'])
    with transaction.atomic():
        experiment.save()
        if personas is not None:
            experiment.personas.set(personas)
    log_activity(actor, 'Updated experiment', f"Experiment {experiment.pk}: {experiment.title}")
    return experiment


def update_experiment_status(experiment_id: int, status: str, *, actor: User | None = None) -> Experiment:
    """Move an experiment to ``status``.

    Any status may follow any other.  Only a move to ``completed`` touches
    ``completed_at``.
    """

    _validate_status(status)
    experiment = Experiment.objects.get(pk=experiment_id)
    previous = experiment.status
    experiment.apply_status(status)
    experiment.save(update_fields=['status', 'completed_at'])
    logger.info('Experiment %s status %s -> %s', experiment.pk, previous, status)
    log_activity(actor, 'Changed experiment status', f"Experiment {experiment.pk}: {previous} -> {status}")
    return experiment


def delete_experiment(experiment_id: int, *, actor: User | None = None) -> int:
    """Delete an experiment and its responses; return the responses removed."""

    with transaction.atomic():
        experiment = Experiment.objects.get(pk=experiment_id)
        title = experiment.title
        removed, _ = ExperimentResponse.objects.filter(experiment=experiment).delete()
        experiment.delete()
    log_activity(
        actor,
        'Deleted experiment',
        f"Experiment {experiment_id}: {title} ({removed} responses removed)",
    )
    return removed
