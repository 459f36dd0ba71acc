"""Tests for the experiment creation wizard and experiment pages."""

from __future__ import annotations

from django.contrib.auth.models import User
from django.test import TestCase
from django.urls import reverse

from research.models import Experiment
from research.services import experiments as experiment_service
from research.services import personas as persona_service
from research.views import WIZARD_SESSION_KEY


def wizard_url(step: int) -> str:
    return reverse('experiment_wizard', args=[step])


class ExperimentWizardTests(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user('owner@example.com', password='Unheard-pass-2024!')
        self.client.force_login(self.user)
        self.persona = persona_service.create_persona(self.user, name='Sarah', description='Early adopter')

    def _complete_first_two_steps(self) -> None:
        self.client.post(wizard_url(1), {'title': 'Launch', 'description': 'Launch feedback'})
        self.client.post(wizard_url(2), {'prompt': 'What do you think?'})

    def test_full_flow_creates_draft_experiment(self) -> None:
        response = self.client.post(reverse('experiment_add'), {
            'title': 'Launch',
            'description': 'Launch feedback',
        })
        self.assertRedirects(response, wizard_url(2))

        response = self.client.post(wizard_url(2), {'prompt': 'What do you think?'})
        self.assertRedirects(response, wizard_url(3))

        response = self.client.post(wizard_url(3), {'personas': [self.persona.pk]})
        self.assertRedirects(response, reverse('experiment_list'))

        experiment = Experiment.objects.get(owner=self.user)
        self.assertEqual(experiment.title, 'Launch')
        self.assertEqual(experiment.prompt, 'What do you think?')
        self.assertEqual(experiment.status, Experiment.Status.DRAFT)
        self.assertEqual(list(experiment.personas.all()), [self.persona])
        self.assertNotIn(WIZARD_SESSION_KEY, self.client.session)

    def test_step_one_validation_messages(self) -> None:
        response = self.client.post(wizard_url(1), {'title': '', 'description': 'x' * 1001})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Title is required')
        self.assertContains(response, 'Description must be less than 1000 characters')

    def test_step_three_requires_a_persona(self) -> None:
        self._complete_first_two_steps()

        response = self.client.post(wizard_url(3), {})

        self.assertContains(response, 'At least one persona must be selected')
        self.assertFalse(Experiment.objects.exists())

    def test_cannot_skip_ahead(self) -> None:
        response = self.client.get(wizard_url(3))
        self.assertRedirects(response, wizard_url(1))

    def test_unknown_step_redirects_to_start(self) -> None:
        response = self.client.get(wizard_url(7))
        self.assertRedirects(response, wizard_url(1))

    def test_back_keeps_entered_values(self) -> None:
        self._complete_first_two_steps()

        response = self.client.post(wizard_url(2), {'prompt': 'Changed prompt', 'action': 'back'})
        self.assertRedirects(response, wizard_url(1))

        response = self.client.get(wizard_url(1))
        self.assertContains(response, 'value="Launch"')
        self.assertEqual(self.client.session[WIZARD_SESSION_KEY]['prompt'], {'prompt': 'Changed prompt'})

    def test_cancel_discards_wizard_state(self) -> None:
        self._complete_first_two_steps()

        response = self.client.get(reverse('experiment_wizard_cancel'))

        self.assertRedirects(response, reverse('experiment_list'))
        self.assertNotIn(WIZARD_SESSION_KEY, self.client.session)
        self.assertRedirects(self.client.get(wizard_url(2)), wizard_url(1))

    def test_step_three_without_personas(self) -> None:
        persona_service.delete_persona(self.persona.pk)
        self._complete_first_two_steps()

        response = self.client.get(wizard_url(3))

        self.assertContains(response, 'No personas available.')
        self.assertFalse(response.context['has_personas'])


class ExperimentPageTests(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user('owner@example.com', password='Unheard-pass-2024!')
        self.client.force_login(self.user)
        self.persona = persona_service.create_persona(self.user, name='Sarah', description='Early adopter')
        self.experiment = experiment_service.create_experiment(
            self.user,
            title='Launch',
            description='Launch feedback',
            prompt='Thoughts?',
            persona_ids=[self.persona.pk],
        )

    def test_list_shows_status_actions(self) -> None:
        response = self.client.get(reverse('experiment_list'))

        self.assertContains(response, 'Launch')
        self.assertContains(response, '1 persona')
        row = response.context['rows'][0]
        self.assertEqual([status for status, _ in row['actions']], ['running'])

    def test_empty_list_suggests_creating_personas(self) -> None:
        experiment_service.delete_experiment(self.experiment.pk)
        persona_service.delete_persona(self.persona.pk)

        response = self.client.get(reverse('experiment_list'))

        self.assertContains(response, 'Tip: Create personas first before running experiments.')

    def test_status_change(self) -> None:
        response = self.client.post(reverse('experiment_status', args=[self.experiment.pk]), {'status': 'completed'})

        self.assertRedirects(response, reverse('experiment_list'))
        self.experiment.refresh_from_db()
        self.assertEqual(self.experiment.status, 'completed')
        self.assertIsNotNone(self.experiment.completed_at)

    def test_invalid_status_shows_error(self) -> None:
        response = self.client.post(
            reverse('experiment_status', args=[self.experiment.pk]),
            {'status': 'paused'},
            follow=True,
        )
        self.assertContains(response, 'Status must be one of')
        self.experiment.refresh_from_db()
        self.assertEqual(self.experiment.status, 'draft')

    def test_edit_experiment(self) -> None:
        other = persona_service.create_persona(self.user, name='Tom', description='Skeptic')

        response = self.client.post(reverse('experiment_edit', args=[self.experiment.pk]), {
            'title': 'Relaunch',
            'description': 'Launch feedback',
            'prompt': 'New thoughts?',
            'personas': [other.pk],
        })

        self.assertRedirects(response, reverse('experiment_list'))
        self.experiment.refresh_from_db()
        self.assertEqual(self.experiment.title, 'Relaunch')
        self.assertEqual(list(self.experiment.personas.all()), [other])

    def test_delete_experiment(self) -> None:
        response = self.client.post(reverse('experiment_delete', args=[self.experiment.pk]))
        self.assertRedirects(response, reverse('experiment_list'))
        self.assertFalse(Experiment.objects.exists())

    def test_other_users_cannot_touch_experiment(self) -> None:
        stranger = User.objects.create_user('stranger@example.com', password='Unheard-pass-2024!')
        self.client.force_login(stranger)
        self.assertEqual(self.client.get(reverse('experiment_edit', args=[self.experiment.pk])).status_code, 404)
        self.assertEqual(self.client.post(reverse('experiment_delete', args=[self.experiment.pk])).status_code, 404)
