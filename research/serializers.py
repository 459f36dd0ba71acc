"""JSON representations of research records for the API.

Keys use camelCase so existing API clients keep working.  Timestamps are
ISO 8601 strings.
"""

from __future__ import annotations

from typing import Any, Dict

from research.models import Experiment, ExperimentResponse, Persona

# Model attribute names that differ from their wire names.
ATTRIBUTE_WIRE_NAMES = {'pain_points': 'painPoints'}
ATTRIBUTE_MODEL_NAMES = {wire: name for name, wire in ATTRIBUTE_WIRE_NAMES.items()}


def _timestamp(value) -> str | None:
    return value.isoformat() if value else None


def persona_to_dict(persona: Persona | None) -> Dict[str, Any] | None:
    if persona is None:
        return None
    return {
        'id': persona.pk,
        'name': persona.name,
        'description': persona.description,
        'attributes': {
            ATTRIBUTE_WIRE_NAMES.get(key, key): value
            for key, value in persona.attributes.items()
        },
        'userId': persona.owner_id,
        'createdAt': _timestamp(persona.created_at),
    }


def experiment_to_dict(experiment: Experiment | None) -> Dict[str, Any] | None:
    if experiment is None:
        return None
    return {
        'id': experiment.pk,
        'title': experiment.title,
        'description': experiment.description,
        'prompt': experiment.prompt,
        'personas': sorted(persona.pk for persona in experiment.personas.all()),
        'status': experiment.status,
        'userId': experiment.owner_id,
        'createdAt': _timestamp(experiment.created_at),
        'completedAt': _timestamp(experiment.completed_at),
    }


def response_to_dict(response: ExperimentResponse | None, *, details: bool = False) -> Dict[str, Any] | None:
    if response is None:
        return None
    payload: Dict[str, Any] = {
        'id': response.pk,
        'experimentId': response.experiment_id,
        'personaId': response.persona_id,
        'content': response.content,
        'sentiment': response.sentiment,
        'metadata': response.metadata,
        'createdAt': _timestamp(response.created_at),
    }
    if details:
        payload['persona'] = persona_to_dict(response.persona)
        payload['experiment'] = experiment_to_dict(response.experiment)
    return payload


def attributes_from_wire(raw: Any) -> Dict[str, Any]:
    """Translate a wire ``attributes`` object into model field names."""

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TypeError('attributes must be an object')
    return {ATTRIBUTE_MODEL_NAMES.get(key, key): value for key, value in raw.items()}


def summary_to_dict(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'total': summary['total'],
        'scored': summary['scored'],
        'unscored': summary['unscored'],
        'counts': summary['counts'],
        'averageScore': summary['average_score'],
    }
