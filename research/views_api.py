"""JSON API over the persona, experiment and response operations.

Every endpoint is a thin adapter: parse the request, call the matching
function in :mod:`research.services` and serialise the result.  The API is
intended for scripts that post generated responses, so it is exempt from
CSRF checks and does not require a session.
"""

from __future__ import annotations

import json
import logging
from functools import wraps
from typing import Any, Callable, Dict, Sequence

from django.contrib.auth.models import User
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from research.serializers import (
    attributes_from_wire,
    experiment_to_dict,
    persona_to_dict,
    response_to_dict,
    summary_to_dict,
)
from research.services import experiments as experiment_service
from research.services import personas as persona_service
from research.services import responses as response_service

logger = logging.getLogger(__name__)


class BadRequest(Exception):
    """Raised for malformed API input that never reaches a service."""


def _load_json_body(request: HttpRequest) -> Dict[str, Any]:
    try:
        payload = json.loads(request.body.decode('utf-8') or '{}')
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BadRequest('Invalid JSON payload.') from exc
    if not isinstance(payload, dict):
        raise BadRequest('The JSON payload must be an object.')
    return payload


def _parse_id(raw: Any, name: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise BadRequest(f'{name} must be an integer id.') from exc
    if isinstance(raw, bool) or value < 1:
        raise BadRequest(f'{name} must be an integer id.')
    return value


def _actor(request: HttpRequest) -> User | None:
    user = getattr(request, 'user', None)
    return user if user is not None and user.is_authenticated else None


def _error(message: str, status: int, fields: Dict[str, Any] | None = None) -> JsonResponse:
    payload: Dict[str, Any] = {'ok': False, 'error': message}
    if fields:
        payload['fields'] = fields
    return JsonResponse(payload, status=status)


def _validation_error(exc: ValidationError) -> JsonResponse:
    if hasattr(exc, 'error_dict'):
        return _error('Validation failed.', 400, exc.message_dict)
    return _error(' '.join(exc.messages), 400)


def api_view(methods: Sequence[str]) -> Callable:
    """Wrap an API handler with method checks and error translation."""

    def decorator(view: Callable[..., JsonResponse]) -> Callable[..., JsonResponse]:
        @csrf_exempt
        @require_http_methods(list(methods))
        @wraps(view)
        def wrapper(request: HttpRequest, *args, **kwargs) -> JsonResponse:
            try:
                return view(request, *args, **kwargs)
            except BadRequest as exc:
                return _error(str(exc), 400)
            except ValidationError as exc:
                return _validation_error(exc)
            except ObjectDoesNotExist:
                return _error('Not found.', 404)

        return wrapper

    return decorator


def _resolve_owner(payload: Dict[str, Any]) -> User:
    user_id = _parse_id(payload.get('userId'), 'userId')
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise ValidationError({'userId': 'Unknown user.'})
    return user


def _persona_attributes(payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return attributes_from_wire(payload.get('attributes'))
    except TypeError as exc:
        raise ValidationError({'attributes': str(exc)}) from exc


# ---------------------------------------------------------------------------
# Personas
# ---------------------------------------------------------------------------


@api_view(['GET', 'POST'])
def persona_collection(request: HttpRequest) -> JsonResponse:
    if request.method == 'GET':
        user_id = _parse_id(request.GET.get('userId'), 'userId')
        personas = persona_service.list_personas_by_user(user_id)
        return JsonResponse({'personas': [persona_to_dict(p) for p in personas]})

    payload = _load_json_body(request)
    persona = persona_service.create_persona(
        _resolve_owner(payload),
        name=payload.get('name', ''),
        description=payload.get('description', ''),
        attributes=_persona_attributes(payload),
        actor=_actor(request),
    )
    return JsonResponse({'ok': True, 'id': persona.pk, 'persona': persona_to_dict(persona)}, status=201)


@api_view(['GET', 'PATCH', 'DELETE'])
def persona_detail(request: HttpRequest, persona_id: int) -> JsonResponse:
    if request.method == 'GET':
        return JsonResponse({'persona': persona_to_dict(persona_service.get_persona(persona_id))})
    if request.method == 'DELETE':
        persona_service.delete_persona(persona_id, actor=_actor(request))
        return JsonResponse({'ok': True})

    payload = _load_json_body(request)
    changes: Dict[str, Any] = {
        key: payload[key] for key in persona_service.EDITABLE_FIELDS if key in payload
    }
    if 'attributes' in payload:
        changes['attributes'] = _persona_attributes(payload)
    persona = persona_service.update_persona(persona_id, actor=_actor(request), **changes)
    return JsonResponse({'ok': True, 'persona': persona_to_dict(persona)})


@api_view(['GET'])
def persona_responses(request: HttpRequest, persona_id: int) -> JsonResponse:
    responses = response_service.list_responses_by_persona(persona_id)
    return JsonResponse({'responses': [response_to_dict(r) for r in responses]})


# ---------------------------------------------------------------------------
# Experiments
# ---------------------------------------------------------------------------


@api_view(['GET', 'POST'])
def experiment_collection(request: HttpRequest) -> JsonResponse:
    if request.method == 'GET':
        status = request.GET.get('status')
        if status:
            experiments = experiment_service.list_experiments_by_status(status)
        else:
            user_id = _parse_id(request.GET.get('userId'), 'userId')
            experiments = experiment_service.list_experiments_by_user(user_id)
        return JsonResponse({'experiments': [experiment_to_dict(e) for e in experiments]})

    payload = _load_json_body(request)
    experiment = experiment_service.create_experiment(
        _resolve_owner(payload),
        title=payload.get('title', ''),
        description=payload.get('description', ''),
        prompt=payload.get('prompt', ''),
        persona_ids=payload.get('personas'),
        actor=_actor(request),
    )
    return JsonResponse(
        {'ok': True, 'id': experiment.pk, 'experiment': experiment_to_dict(experiment)},
        status=201,
    )


@api_view(['GET', 'PATCH', 'DELETE'])
def experiment_detail(request: HttpRequest, experiment_id: int) -> JsonResponse:
    if request.method == 'GET':
        experiment = experiment_service.get_experiment(experiment_id)
        return JsonResponse({'experiment': experiment_to_dict(experiment)})
    if request.method == 'DELETE':
        removed = experiment_service.delete_experiment(experiment_id, actor=_actor(request))
        return JsonResponse({'ok': True, 'deletedResponses': removed})

    payload = _load_json_body(request)
    changes: Dict[str, Any] = {
        key: payload[key] for key in experiment_service.EDITABLE_FIELDS if key in payload
    }
    if 'personas' in payload:
        changes['persona_ids'] = payload['personas']
    experiment = experiment_service.update_experiment(experiment_id, actor=_actor(request), **changes)
    return JsonResponse({'ok': True, 'experiment': experiment_to_dict(experiment)})


@api_view(['POST'])
def experiment_status(request: HttpRequest, experiment_id: int) -> JsonResponse:
    payload = _load_json_body(request)
    experiment = experiment_service.update_experiment_status(
        experiment_id,
        payload.get('status'),
        actor=_actor(request),
    )
    return JsonResponse({'ok': True, 'experiment': experiment_to_dict(experiment)})


@api_view(['GET'])
def experiment_responses(request: HttpRequest, experiment_id: int) -> JsonResponse:
    if request.GET.get('details', '').lower() in {'1', 'true', 'yes'}:
        responses = response_service.list_responses_with_details(experiment_id)
        return JsonResponse({'responses': [response_to_dict(r, details=True) for r in responses]})
    responses = response_service.list_responses_by_experiment(experiment_id)
    return JsonResponse({'responses': [response_to_dict(r) for r in responses]})


@api_view(['GET'])
def experiment_summary(request: HttpRequest, experiment_id: int) -> JsonResponse:
    if experiment_service.get_experiment(experiment_id) is None:
        return JsonResponse({'summary': None})
    summary = response_service.summarise_sentiment(experiment_id)
    return JsonResponse({'summary': summary_to_dict(summary)})


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@api_view(['POST'])
def response_collection(request: HttpRequest) -> JsonResponse:
    payload = _load_json_body(request)
    response = response_service.create_response(
        experiment_id=_parse_id(payload.get('experimentId'), 'experimentId'),
        persona_id=_parse_id(payload.get('personaId'), 'personaId'),
        content=payload.get('content', ''),
        sentiment=payload.get('sentiment'),
        metadata=payload.get('metadata'),
        actor=_actor(request),
    )
    return JsonResponse({'ok': True, 'id': response.pk, 'response': response_to_dict(response)}, status=201)


@api_view(['GET', 'DELETE'])
def response_detail(request: HttpRequest, response_id: int) -> JsonResponse:
    if request.method == 'DELETE':
        response_service.delete_response(response_id, actor=_actor(request))
        return JsonResponse({'ok': True})
    return JsonResponse({'response': response_to_dict(response_service.get_response(response_id))})


@api_view(['POST'])
def response_sentiment(request: HttpRequest, response_id: int) -> JsonResponse:
    payload = _load_json_body(request)
    response = response_service.update_response_sentiment(
        response_id,
        payload.get('sentiment'),
        actor=_actor(request),
    )
    return JsonResponse({'ok': True, 'response': response_to_dict(response)})
