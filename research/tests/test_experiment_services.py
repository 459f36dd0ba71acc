"""Tests for experiment persistence and status handling."""

from __future__ import annotations

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.test import TestCase

from research.models import Experiment, ExperimentResponse
from research.services import experiments as experiment_service
from research.services import personas as persona_service
from research.services import responses as response_service


class ExperimentServiceTests(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user('owner@example.com', password='Unheard-pass-2024!')
        self.other = User.objects.create_user('other@example.com', password='Unheard-pass-2024!')
        self.persona = persona_service.create_persona(self.user, name='Sarah', description='Early adopter')
        self.second = persona_service.create_persona(self.user, name='Tom', description='Skeptic')

    def _experiment(self, **overrides) -> Experiment:
        values = {
            'title': 'Launch',
            'description': 'Launch feedback',
            'prompt': 'What do you think of the launch?',
            'persona_ids': [self.persona.pk],
        }
        values.update(overrides)
        return experiment_service.create_experiment(self.user, **values)

    def test_create_starts_as_draft_with_personas(self) -> None:
        experiment = self._experiment(persona_ids=[self.persona.pk, self.second.pk, self.persona.pk])

        self.assertEqual(experiment.status, Experiment.Status.DRAFT)
        self.assertIsNone(experiment.completed_at)
        self.assertEqual(
            sorted(experiment.personas.values_list('pk', flat=True)),
            sorted([self.persona.pk, self.second.pk]),
        )

    def test_create_requires_at_least_one_persona(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self._experiment(persona_ids=[])
        self.assertIn('personas', ctx.exception.message_dict)
        self.assertFalse(Experiment.objects.exists())

    def test_create_rejects_personas_of_another_user(self) -> None:
        foreign = persona_service.create_persona(self.other, name='Foreign', description='Not yours')
        with self.assertRaises(ValidationError) as ctx:
            self._experiment(persona_ids=[self.persona.pk, foreign.pk])
        self.assertIn(str(foreign.pk), ctx.exception.message_dict['personas'][0])

    def test_create_validates_field_lengths(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self._experiment(title='t' * 201, prompt='')
        self.assertIn('title', ctx.exception.message_dict)
        self.assertIn('prompt', ctx.exception.message_dict)

    def test_status_completed_stamps_completed_at(self) -> None:
        experiment = self._experiment()

        running = experiment_service.update_experiment_status(experiment.pk, 'running')
        self.assertIsNone(running.completed_at)

        completed = experiment_service.update_experiment_status(experiment.pk, 'completed')
        self.assertIsNotNone(completed.completed_at)
        stamped = completed.completed_at

        reset = experiment_service.update_experiment_status(experiment.pk, 'draft')
        reset.refresh_from_db()
        self.assertEqual(reset.status, 'draft')
        self.assertEqual(reset.completed_at, stamped)

    def test_status_rejects_unknown_value(self) -> None:
        experiment = self._experiment()
        with self.assertRaises(ValidationError):
            experiment_service.update_experiment_status(experiment.pk, 'paused')

    def test_list_by_status_filters_across_users(self) -> None:
        draft = self._experiment(title='Draft one')
        running = self._experiment(title='Running one')
        experiment_service.update_experiment_status(running.pk, 'running')

        self.assertEqual(list(experiment_service.list_experiments_by_status('running')), [running])
        self.assertEqual(list(experiment_service.list_experiments_by_status('draft')), [draft])

    def test_update_replaces_persona_set(self) -> None:
        experiment = self._experiment()

        updated = experiment_service.update_experiment(
            experiment.pk,
            title='Relaunch',
            persona_ids=[self.second.pk],
        )

        self.assertEqual(updated.title, 'Relaunch')
        self.assertEqual(list(updated.personas.all()), [self.second])

    def test_update_rejects_status_field(self) -> None:
        experiment = self._experiment()
        with self.assertRaises(ValidationError):
            experiment_service.update_experiment(experiment.pk, status='completed')

    def test_delete_removes_responses(self) -> None:
        experiment = self._experiment()
        kept = self._experiment(title='Other')
        for text in ('one', 'two'):
            response_service.create_response(
                experiment_id=experiment.pk,
                persona_id=self.persona.pk,
                content=text,
            )
        response_service.create_response(experiment_id=kept.pk, persona_id=self.persona.pk, content='three')

        removed = experiment_service.delete_experiment(experiment.pk)

        self.assertEqual(removed, 2)
        self.assertFalse(Experiment.objects.filter(pk=experiment.pk).exists())
        self.assertEqual(ExperimentResponse.objects.count(), 1)
        self.assertIsNone(experiment_service.get_experiment(experiment.pk))

    def test_delete_missing_experiment_raises(self) -> None:
        with self.assertRaises(Experiment.DoesNotExist):
            experiment_service.delete_experiment(999)
