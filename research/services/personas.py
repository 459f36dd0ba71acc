"""Persona persistence operations."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from research.models import Persona, whole_number
from research.services.activity import log_activity

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'description')


def _apply_attributes(persona: Persona, attributes: Mapping[str, Any] | None) -> None:
    """Replace every attribute field with the values in ``attributes``.

    Missing keys reset the field to its empty value, matching a whole
    object replacement.
    """

    attributes = dict(attributes or {})
    unknown = set(attributes) - set(Persona.ATTRIBUTE_FIELDS)
    if unknown:
        raise ValidationError(
            {'attributes': f"Unknown attribute(s): {', '.join(sorted(unknown))}."}
        )
    age = attributes.get('age')
    persona.age = None if age in (None, '') else whole_number(age, 'age')
    persona.gender = attributes.get('gender') or ''
    persona.occupation = attributes.get('occupation') or ''
    persona.interests = attributes.get('interests') or []
    persona.pain_points = attributes.get('pain_points') or []
    persona.goals = attributes.get('goals') or []


def list_personas_by_user(user_id: int) -> QuerySet[Persona]:
    """Return the user's personas, newest first."""

    return Persona.objects.filter(owner_id=user_id).order_by('-created_at', '-id')


def get_persona(persona_id: int) -> Persona | None:
    return Persona.objects.filter(pk=persona_id).first()


def create_persona(
    owner: User,
    *,
    name: str,
    description: str,
    attributes: Mapping[str, Any] | None = None,
    actor: User | None = None,
) -> Persona:
    """Validate and insert a new persona for ``owner``."""

    persona = Persona(owner=owner, name=name, description=description)
    _apply_attributes(persona, attributes)
    persona.full_clean()
    persona.save()
    log_activity(actor, 'Created persona', f"Persona {persona.pk}: {persona.name}")
    return persona


def update_persona(persona_id: int, *, actor: User | None = None, **changes: Any) -> Persona:
    """Patch the given fields of a persona.

    Only ``name``, ``description`` and ``attributes`` may be changed.  An
    ``attributes`` mapping replaces all six attribute fields together.
    """

    unknown = set(changes) - {*EDITABLE_FIELDS, 'attributes'}
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}.")
    persona = Persona.objects.get(pk=persona_id)
    for field in EDITABLE_FIELDS:
        if field in changes:
            setattr(persona, field, changes[field])
    if 'attributes' in changes:
        _apply_attributes(persona, changes['attributes'])
    persona.full_clean()
    persona.save()
    log_activity(actor, 'Updated persona', f"Persona {persona.pk}: {persona.name}")
    return persona


def delete_persona(persona_id: int, *, actor: User | None = None) -> None:
    """Delete a persona.

    Experiments drop it from their persona set and its responses stay with
    an empty persona reference.
    """

    persona = Persona.objects.get(pk=persona_id)
    name = persona.name
    with transaction.atomic():
        persona.delete()
    log_activity(actor, 'Deleted persona', f"Persona {persona_id}: {name}")


def persona_attribute_payload(cleaned_data: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the attribute values out of validated form data."""

    return {field: cleaned_data.get(field) for field in Persona.ATTRIBUTE_FIELDS}
