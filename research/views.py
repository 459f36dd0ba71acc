"""Page views for Unheard V2.

This module implements account registration and sign-in, the home
dashboard, persona management, the three-step experiment wizard,
experiment management and the results page.  Every page is scoped to the
signed-in user; persistence goes through :mod:`research.services` so the
pages and the JSON API share the same rules.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from django.contrib import messages
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.http import require_POST

from .forms import (
    ExperimentBasicsForm,
    ExperimentForm,
    ExperimentPersonasForm,
    ExperimentPromptForm,
    LoginForm,
    PersonaForm,
    PersonaWorkbookForm,
    RegistrationForm,
    SentimentForm,
)
from .models import Experiment, ExperimentResponse, Persona
from .services import experiments as experiment_service
from .services import personas as persona_service
from .services import responses as response_service
from .services.persona_workbook import (
    COLUMN_DEFINITIONS as PERSONA_WORKBOOK_COLUMNS,
    PersonaWorkbookError,
    export_personas_workbook,
    import_personas_workbook,
)
from .services.results_export import EXPORT_FORMATS, ResultsExportError, export_results

logger = logging.getLogger(__name__)

WIZARD_SESSION_KEY = 'experiment_wizard'

WIZARD_STEPS: List[Tuple[int, str]] = [
    (1, 'Basic Info'),
    (2, 'Prompt'),
    (3, 'Select Personas'),
]

STATUS_ACTIONS: Dict[str, List[Tuple[str, str]]] = {
    Experiment.Status.DRAFT: [(Experiment.Status.RUNNING, 'Run')],
    Experiment.Status.RUNNING: [
        (Experiment.Status.COMPLETED, 'Mark completed'),
        (Experiment.Status.FAILED, 'Mark failed'),
    ],
    Experiment.Status.COMPLETED: [(Experiment.Status.DRAFT, 'Reset to draft')],
    Experiment.Status.FAILED: [(Experiment.Status.DRAFT, 'Reset to draft')],
}


def _build_breadcrumbs(*segments: Tuple[str, Optional[str]]) -> List[Dict[str, str]]:
    """Construct a breadcrumb trail starting from the home page."""

    breadcrumbs: List[Dict[str, str]] = [{'label': 'Home', 'url': reverse('home')}]
    for label, url in segments:
        breadcrumbs.append({'label': label, 'url': url or ''})
    return breadcrumbs


def _add_service_errors(form, exc: ValidationError) -> None:
    """Attach a service ValidationError to a bound form."""

    if hasattr(exc, 'error_dict'):
        for field, errors in exc.message_dict.items():
            form.add_error(field if field in form.fields else None, errors)
    else:
        form.add_error(None, exc.messages)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def register(request: HttpRequest) -> HttpResponse:
    """Create a user account and send the user to the login page."""
    if request.user.is_authenticated:
        return redirect('home')

    if request.method == 'POST':
        form = RegistrationForm(request.POST)
        if form.is_valid():
            email = form.cleaned_data['email']
            User.objects.create_user(
                username=email,
                email=email,
                password=form.cleaned_data['password'],
                first_name=form.cleaned_data['name'],
            )
            logger.info('Registered user %s', email)
            messages.success(request, 'Registration successful. You can now log in.')
            return redirect('login')
    else:
        form = RegistrationForm()
    return render(request, 'register.html', {'form': form, 'breadcrumbs': []})


def login_view(request: HttpRequest) -> HttpResponse:
    """Authenticate a user via email and password."""
    if request.user.is_authenticated:
        return redirect('home')
    if request.method == 'POST':
        form = LoginForm(request.POST)
        if form.is_valid():
            email = form.cleaned_data['email'].strip().lower()
            password = form.cleaned_data['password']
            user = authenticate(request, username=email, password=password)
            if user:
                login(request, user)
                next_url = request.GET.get('next', '')
                if next_url and url_has_allowed_host_and_scheme(next_url, allowed_hosts={request.get_host()}):
                    return redirect(next_url)
                return redirect('home')
            messages.error(request, 'Invalid email or password.')
    else:
        form = LoginForm()
    return render(request, 'login.html', {'form': form, 'breadcrumbs': []})


def logout_view(request: HttpRequest) -> HttpResponse:
    """Log the user out and redirect to the login page."""
    logout(request)
    return redirect('login')


@login_required
def home(request: HttpRequest) -> HttpResponse:
    """Landing page with section links and record counts."""
    user = request.user
    context = {
        'persona_count': Persona.objects.filter(owner=user).count(),
        'experiment_count': Experiment.objects.filter(owner=user).count(),
        'response_count': ExperimentResponse.objects.filter(experiment__owner=user).count(),
        'recent_experiments': experiment_service.list_experiments_by_user(user.pk)[:5],
    }
    return render(request, 'home.html', context)


# ---------------------------------------------------------------------------
# Personas
# ---------------------------------------------------------------------------


@login_required
def persona_list(request: HttpRequest) -> HttpResponse:
    """List the user's personas as cards."""
    context = {
        'personas': persona_service.list_personas_by_user(request.user.pk),
        'workbook_form': PersonaWorkbookForm(),
        'workbook_headers': [label for _, label in PERSONA_WORKBOOK_COLUMNS],
        'breadcrumbs': _build_breadcrumbs(('Personas', '')),
    }
    return render(request, 'personas_list.html', context)


def _persona_form_context(form: PersonaForm, title: str, persona: Persona | None = None) -> Dict[str, Any]:
    segments: List[Tuple[str, Optional[str]]] = [('Personas', reverse('persona_list'))]
    if persona is not None:
        segments.append((persona.name, ''))
    segments.append((title, ''))
    return {
        'form': form,
        'title': title,
        'persona': persona,
        'breadcrumbs': _build_breadcrumbs(*segments),
    }


@login_required
def persona_add(request: HttpRequest) -> HttpResponse:
    """Create a new persona for the current user."""
    if request.method == 'POST':
        form = PersonaForm(request.POST)
        if form.is_valid():
            try:
                persona = persona_service.create_persona(
                    request.user,
                    name=form.cleaned_data['name'],
                    description=form.cleaned_data['description'],
                    attributes=persona_service.persona_attribute_payload(form.cleaned_data),
                    actor=request.user,
                )
            except ValidationError as exc:
                _add_service_errors(form, exc)
            else:
                messages.success(request, f'Persona "{persona.name}" created.')
                return redirect('persona_list')
    else:
        form = PersonaForm()
    return render(request, 'persona_form.html', _persona_form_context(form, 'New Persona'))


@login_required
def persona_edit(request: HttpRequest, pk: int) -> HttpResponse:
    """Edit one of the current user's personas."""
    persona = get_object_or_404(Persona, pk=pk, owner=request.user)
    if request.method == 'POST':
        form = PersonaForm(request.POST, instance=persona)
        if form.is_valid():
            try:
                persona = persona_service.update_persona(
                    persona.pk,
                    name=form.cleaned_data['name'],
                    description=form.cleaned_data['description'],
                    attributes=persona_service.persona_attribute_payload(form.cleaned_data),
                    actor=request.user,
                )
            except ValidationError as exc:
                _add_service_errors(form, exc)
            else:
                messages.success(request, 'Persona updated successfully.')
                return redirect('persona_list')
    else:
        form = PersonaForm(instance=persona)
    return render(request, 'persona_form.html', _persona_form_context(form, 'Edit Persona', persona))


@login_required
@require_POST
def persona_delete(request: HttpRequest, pk: int) -> HttpResponse:
    persona = get_object_or_404(Persona, pk=pk, owner=request.user)
    persona_service.delete_persona(persona.pk, actor=request.user)
    messages.success(request, 'Persona deleted successfully.')
    return redirect('persona_list')


@login_required
def persona_export_workbook(request: HttpRequest) -> HttpResponse:
    """Download the user's personas as an Excel workbook."""
    buffer = export_personas_workbook(persona_service.list_personas_by_user(request.user.pk))
    response = HttpResponse(
        buffer.getvalue(),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    )
    response['Content-Disposition'] = 'attachment; filename="personas.xlsx"'
    return response


@login_required
@require_POST
def persona_import_workbook(request: HttpRequest) -> HttpResponse:
    """Create personas from an uploaded Excel workbook."""
    form = PersonaWorkbookForm(request.POST, request.FILES)
    if not form.is_valid():
        for errors in form.errors.values():
            for error in errors:
                messages.error(request, error)
        return redirect('persona_list')
    try:
        result = import_personas_workbook(
            form.cleaned_data['workbook'],
            owner=request.user,
            actor=request.user,
        )
    except PersonaWorkbookError as exc:
        messages.error(request, str(exc))
        return redirect('persona_list')
    if result.errors:
        messages.error(request, 'No personas were imported. Fix the following rows and try again.')
        for error in result.errors:
            messages.warning(request, error)
    else:
        messages.success(request, f'Imported {result.created} personas.')
    return redirect('persona_list')


# ---------------------------------------------------------------------------
# Experiments
# ---------------------------------------------------------------------------


@login_required
def experiment_list(request: HttpRequest) -> HttpResponse:
    """List the user's experiments with their status actions."""
    experiments = experiment_service.list_experiments_by_user(request.user.pk)
    rows = [
        {'experiment': experiment, 'actions': STATUS_ACTIONS.get(experiment.status, [])}
        for experiment in experiments
    ]
    context = {
        'rows': rows,
        'has_personas': Persona.objects.filter(owner=request.user).exists(),
        'breadcrumbs': _build_breadcrumbs(('Experiments', '')),
    }
    return render(request, 'experiments_list.html', context)


def _wizard_state(request: HttpRequest) -> Dict[str, Any]:
    return request.session.get(WIZARD_SESSION_KEY) or {}


def _save_wizard_state(request: HttpRequest, state: Dict[str, Any]) -> None:
    request.session[WIZARD_SESSION_KEY] = state
    request.session.modified = True


def _first_incomplete_step(state: Dict[str, Any]) -> int:
    if not state.get('basics'):
        return 1
    if not state.get('prompt'):
        return 2
    return 3


@login_required
def experiment_wizard(request: HttpRequest, step: int) -> HttpResponse:
    """Three-step experiment creation wizard.

    Each step validates its own form and stores the cleaned values in the
    session.  The final step merges the three payloads and creates the
    experiment.  Requesting a step whose predecessors are incomplete
    redirects to the first incomplete step.
    """
    if step not in {number for number, _ in WIZARD_STEPS}:
        return redirect('experiment_wizard', step=1)
    state = _wizard_state(request)
    allowed = _first_incomplete_step(state)
    if step > allowed:
        return redirect('experiment_wizard', step=allowed)

    data = request.POST if request.method == 'POST' else None
    going_back = data is not None and data.get('action') == 'back'

    if step == 1:
        form = ExperimentBasicsForm(data, initial=state.get('basics'))
    elif step == 2:
        form = ExperimentPromptForm(data, initial=state.get('prompt'))
    else:
        form = ExperimentPersonasForm(
            data,
            owner=request.user,
            initial={'personas': state.get('personas', [])},
        )

    if request.method == 'POST':
        valid = form.is_valid()
        if valid:
            if step == 1:
                state['basics'] = form.cleaned_data
            elif step == 2:
                state['prompt'] = form.cleaned_data
            else:
                state['personas'] = [persona.pk for persona in form.cleaned_data['personas']]
            _save_wizard_state(request, state)
        if going_back:
            return redirect('experiment_wizard', step=max(step - 1, 1))
        if valid and step < 3:
            return redirect('experiment_wizard', step=step + 1)
        if valid:
            payload = {**state['basics'], **state['prompt']}
            try:
                experiment = experiment_service.create_experiment(
                    request.user,
                    title=payload['title'],
                    description=payload['description'],
                    prompt=payload['prompt'],
                    persona_ids=state['personas'],
                    actor=request.user,
                )
            except ValidationError as exc:
                _add_service_errors(form, exc)
            else:
                request.session.pop(WIZARD_SESSION_KEY, None)
                messages.success(request, f'Experiment "{experiment.title}" created.')
                return redirect('experiment_list')

    has_personas = True
    if step == 3:
        has_personas = form.fields['personas'].queryset.exists()
    context = {
        'form': form,
        'step': step,
        'steps': WIZARD_STEPS,
        'has_personas': has_personas,
        'breadcrumbs': _build_breadcrumbs(
            ('Experiments', reverse('experiment_list')),
            ('New Experiment', ''),
        ),
    }
    return render(request, 'experiment_wizard.html', context)


@login_required
def experiment_wizard_cancel(request: HttpRequest) -> HttpResponse:
    """Discard the wizard's session data."""
    request.session.pop(WIZARD_SESSION_KEY, None)
    return redirect('experiment_list')


@login_required
def experiment_edit(request: HttpRequest, pk: int) -> HttpResponse:
    """Edit the title, description, prompt and personas of an experiment."""
    experiment = get_object_or_404(Experiment, pk=pk, owner=request.user)
    if request.method == 'POST':
        form = ExperimentForm(request.POST, instance=experiment, owner=request.user)
        if form.is_valid():
            try:
                experiment = experiment_service.update_experiment(
                    experiment.pk,
                    title=form.cleaned_data['title'],
                    description=form.cleaned_data['description'],
                    prompt=form.cleaned_data['prompt'],
                    persona_ids=[persona.pk for persona in form.cleaned_data['personas']],
                    actor=request.user,
                )
            except ValidationError as exc:
                _add_service_errors(form, exc)
            else:
                messages.success(request, 'Experiment updated successfully.')
                return redirect('experiment_list')
    else:
        form = ExperimentForm(instance=experiment, owner=request.user)
    context = {
        'form': form,
        'experiment': experiment,
        'breadcrumbs': _build_breadcrumbs(
            ('Experiments', reverse('experiment_list')),
            (experiment.title, ''),
            ('Edit', ''),
        ),
    }
    return render(request, 'experiment_form.html', context)


@login_required
@require_POST
def experiment_status(request: HttpRequest, pk: int) -> HttpResponse:
    experiment = get_object_or_404(Experiment, pk=pk, owner=request.user)
    try:
        experiment = experiment_service.update_experiment_status(
            experiment.pk,
            request.POST.get('status', ''),
            actor=request.user,
        )
    except ValidationError as exc:
        messages.error(request, ' '.join(exc.messages))
    else:
        messages.success(request, f'"{experiment.title}" is now {experiment.get_status_display().lower()}.')
    return redirect('experiment_list')


@login_required
@require_POST
def experiment_delete(request: HttpRequest, pk: int) -> HttpResponse:
    """Delete an experiment together with its responses."""
    experiment = get_object_or_404(Experiment, pk=pk, owner=request.user)
    removed = experiment_service.delete_experiment(experiment.pk, actor=request.user)
    messages.success(request, f'Experiment deleted along with {removed} responses.')
    return redirect('experiment_list')


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@login_required
def results(request: HttpRequest) -> HttpResponse:
    """Show the responses and sentiment summary for a chosen experiment."""
    experiments = experiment_service.list_experiments_by_user(request.user.pk)
    selected = None
    rows: List[Dict[str, Any]] = []
    summary = None
    raw_id = request.GET.get('experiment')
    if raw_id:
        try:
            selected_id = int(raw_id)
        except ValueError:
            selected_id = None
        selected = next((e for e in experiments if e.pk == selected_id), None)
        if selected is None:
            messages.warning(request, 'That experiment could not be found.')
    if selected is not None:
        for response in response_service.list_responses_with_details(selected.pk):
            initial = response.sentiment or {}
            rows.append({
                'response': response,
                'sentiment_form': SentimentForm(
                    initial=initial,
                    prefix=f'r{response.pk}',
                ),
            })
        summary = response_service.summarise_sentiment(selected.pk)
    context = {
        'experiments': experiments,
        'selected': selected,
        'rows': rows,
        'summary': summary,
        'export_formats': EXPORT_FORMATS,
        'breadcrumbs': _build_breadcrumbs(('Results', '')),
    }
    return render(request, 'results.html', context)


def _results_redirect(experiment_id: int) -> HttpResponse:
    return redirect(f"{reverse('results')}?experiment={experiment_id}")


@login_required
@require_POST
def response_sentiment_update(request: HttpRequest, pk: int) -> HttpResponse:
    response = get_object_or_404(ExperimentResponse, pk=pk, experiment__owner=request.user)
    form = SentimentForm(request.POST, prefix=f'r{response.pk}')
    if form.is_valid():
        response_service.update_response_sentiment(
            response.pk,
            {'score': form.cleaned_data['score'], 'label': form.cleaned_data['label']},
            actor=request.user,
        )
        messages.success(request, 'Sentiment saved.')
    else:
        for field, errors in form.errors.items():
            messages.error(request, f"{field}: {' '.join(errors)}")
    return _results_redirect(response.experiment_id)


@login_required
@require_POST
def response_delete(request: HttpRequest, pk: int) -> HttpResponse:
    response = get_object_or_404(ExperimentResponse, pk=pk, experiment__owner=request.user)
    experiment_id = response.experiment_id
    response_service.delete_response(response.pk, actor=request.user)
    messages.success(request, 'Response deleted.')
    return _results_redirect(experiment_id)


@login_required
def results_export(request: HttpRequest, pk: int) -> HttpResponse:
    """Download an experiment's responses as CSV or Excel."""
    experiment = get_object_or_404(Experiment, pk=pk, owner=request.user)
    try:
        export = export_results(experiment, request.GET.get('format', 'csv'))
    except ResultsExportError as exc:
        messages.error(request, str(exc))
        return _results_redirect(experiment.pk)
    response = HttpResponse(export.content, content_type=export.content_type)
    response['Content-Disposition'] = f'attachment; filename="{export.filename}"'
    return response
