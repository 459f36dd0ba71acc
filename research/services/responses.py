"""Response persistence operations and sentiment summaries."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db.models import Avg, Count, QuerySet

from research.models import Experiment, ExperimentResponse, Persona, whole_number
from research.services.activity import log_activity

logger = logging.getLogger(__name__)

METADATA_FIELDS = {'tokens': 'tokens', 'duration': 'duration', 'model': 'model_name'}


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _apply_sentiment(response: ExperimentResponse, sentiment: Mapping[str, Any] | None) -> None:
    if sentiment is None:
        response.sentiment_score = None
        response.sentiment_label = ''
        return
    if not isinstance(sentiment, Mapping):
        raise ValidationError({'sentiment': 'Sentiment must be an object with score and label.'})
    missing = [key for key in ('score', 'label') if sentiment.get(key) in (None, '')]
    if missing:
        raise ValidationError({'sentiment': f"Sentiment is missing: {', '.join(missing)}."})
    score = sentiment['score']
    if not _is_finite_number(score):
        raise ValidationError({'sentiment': 'Sentiment score must be a finite number.'})
    response.sentiment_score = score
    response.sentiment_label = str(sentiment['label']).strip().lower()


def _apply_metadata(response: ExperimentResponse, metadata: Mapping[str, Any] | None) -> None:
    metadata = metadata or {}
    if not isinstance(metadata, Mapping):
        raise ValidationError({'metadata': 'Metadata must be an object.'})
    unknown = set(metadata) - set(METADATA_FIELDS)
    if unknown:
        raise ValidationError({'metadata': f"Unknown metadata key(s): {', '.join(sorted(unknown))}."})
    tokens = metadata.get('tokens')
    duration = metadata.get('duration')
    if tokens is not None:
        tokens = whole_number(tokens, 'metadata')
    if duration is not None and not _is_finite_number(duration):
        raise ValidationError({'metadata': 'Duration must be a finite number.'})
    response.tokens = tokens
    response.duration = duration
    response.model_name = metadata.get('model') or ''


def list_responses_by_experiment(experiment_id: int) -> QuerySet[ExperimentResponse]:
    """Return an experiment's responses, newest first."""

    return ExperimentResponse.objects.filter(experiment_id=experiment_id).order_by('-created_at', '-id')


def list_responses_by_persona(persona_id: int) -> QuerySet[ExperimentResponse]:
    """Return a persona's responses across experiments, newest first."""

    return ExperimentResponse.objects.filter(persona_id=persona_id).order_by('-created_at', '-id')


def list_responses_with_details(experiment_id: int) -> List[ExperimentResponse]:
    """Return an experiment's responses with persona and experiment loaded.

    A response whose persona was deleted carries ``persona = None``.
    """

    return list(
        list_responses_by_experiment(experiment_id)
        .select_related('persona', 'experiment')
        .prefetch_related('experiment__personas')
    )


def get_response(response_id: int) -> ExperimentResponse | None:
    return ExperimentResponse.objects.filter(pk=response_id).first()


def create_response(
    *,
    experiment_id: int,
    persona_id: int,
    content: str,
    sentiment: Mapping[str, Any] | None = None,
    metadata: Mapping[str, Any] | None = None,
    actor: User | None = None,
) -> ExperimentResponse:
    """Record the text a persona produced for an experiment."""

    errors: Dict[str, str] = {}
    experiment = Experiment.objects.filter(pk=experiment_id).first() if experiment_id else None
    if experiment is None:
        errors['experiment'] = 'Unknown experiment.'
    persona = Persona.objects.filter(pk=persona_id).first() if persona_id else None
    if persona is None:
        errors['persona'] = 'Unknown persona.'
    if errors:
        raise ValidationError(errors)
    response = ExperimentResponse(experiment=experiment, persona=persona, content=content)
    _apply_sentiment(response, sentiment)
    _apply_metadata(response, metadata)
    response.full_clean()
    response.save()
    log_activity(actor, 'Recorded response', f"Response {response.pk} for experiment {experiment.pk}")
    return response


def update_response_sentiment(
    response_id: int,
    sentiment: Mapping[str, Any],
    *,
    actor: User | None = None,
) -> ExperimentResponse:
    """Replace a response's sentiment score and label."""

    response = ExperimentResponse.objects.get(pk=response_id)
    if sentiment is None:
        raise ValidationError({'sentiment': 'Sentiment is required.'})
    _apply_sentiment(response, sentiment)
    response.full_clean()
    response.save(update_fields=['sentiment_score', 'sentiment_label'])
    log_activity(actor, 'Updated response sentiment', f"Response {response.pk}: {response.sentiment_label}")
    return response


def delete_response(response_id: int, *, actor: User | None = None) -> None:
    response = ExperimentResponse.objects.get(pk=response_id)
    experiment_id = response.experiment_id
    response.delete()
    log_activity(actor, 'Deleted response', f"Response {response_id} of experiment {experiment_id}")


def summarise_sentiment(experiment_id: int) -> Dict[str, Any]:
    """Aggregate sentiment labels and the mean score for an experiment."""

    responses = ExperimentResponse.objects.filter(experiment_id=experiment_id)
    counts = {label: 0 for label in ExperimentResponse.SentimentLabel.values}
    for row in responses.exclude(sentiment_label='').order_by().values('sentiment_label').annotate(total=Count('id')):
        counts[row['sentiment_label']] = row['total']
    totals = responses.aggregate(total=Count('id'), average=Avg('sentiment_score'))
    scored = sum(counts.values())
    average = totals['average']
    return {
        'total': totals['total'],
        'scored': scored,
        'unscored': totals['total'] - scored,
        'counts': counts,
        'average_score': round(average, 3) if average is not None else None,
    }
