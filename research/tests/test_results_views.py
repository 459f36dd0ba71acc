"""Tests for the results page and its exports."""

from __future__ import annotations

from io import BytesIO

from django.contrib.auth.models import User
from django.test import TestCase
from django.urls import reverse
from openpyxl import load_workbook

from research.models import ExperimentResponse
from research.services import experiments as experiment_service
from research.services import personas as persona_service
from research.services import responses as response_service
from research.services.results_export import COLUMN_DEFINITIONS


class ResultsViewTests(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create_user('owner@example.com', password='Unheard-pass-2024!')
        self.client.force_login(self.user)
        self.sarah = persona_service.create_persona(self.user, name='Sarah', description='Early adopter')
        self.tom = persona_service.create_persona(self.user, name='Tom', description='Skeptic')
        self.experiment = experiment_service.create_experiment(
            self.user,
            title='Launch Feedback',
            description='Launch feedback',
            prompt='Thoughts?',
            persona_ids=[self.sarah.pk, self.tom.pk],
        )
        self.positive = response_service.create_response(
            experiment_id=self.experiment.pk,
            persona_id=self.sarah.pk,
            content='Love it',
            sentiment={'score': 0.9, 'label': 'positive'},
            metadata={'tokens': 12, 'model': 'gpt-4'},
        )
        self.unscored = response_service.create_response(
            experiment_id=self.experiment.pk,
            persona_id=self.tom.pk,
            content='Not sure',
        )

    def _results_url(self) -> str:
        return f"{reverse('results')}?experiment={self.experiment.pk}"

    def test_results_page_lists_responses_and_summary(self) -> None:
        response = self.client.get(self._results_url())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['selected'], self.experiment)
        self.assertEqual(len(response.context['rows']), 2)
        self.assertEqual(response.context['summary']['counts']['positive'], 1)
        self.assertContains(response, 'Love it')
        self.assertContains(response, 'Unscored')

    def test_results_without_selection(self) -> None:
        response = self.client.get(reverse('results'))
        self.assertIsNone(response.context['selected'])
        self.assertContains(response, 'Launch Feedback')

    def test_results_for_unknown_experiment(self) -> None:
        response = self.client.get(f"{reverse('results')}?experiment=999")
        self.assertIsNone(response.context['selected'])
        self.assertContains(response, 'That experiment could not be found.')

    def test_deleted_persona_is_labelled(self) -> None:
        persona_service.delete_persona(self.tom.pk)
        response = self.client.get(self._results_url())
        self.assertContains(response, '(deleted persona)')

    def test_update_sentiment(self) -> None:
        prefix = f'r{self.unscored.pk}'
        response = self.client.post(
            reverse('response_sentiment_update', args=[self.unscored.pk]),
            {f'{prefix}-score': '-0.3', f'{prefix}-label': 'negative'},
        )

        self.assertRedirects(response, self._results_url())
        self.unscored.refresh_from_db()
        self.assertEqual(self.unscored.sentiment, {'score': -0.3, 'label': 'negative'})

    def test_update_sentiment_rejects_out_of_range(self) -> None:
        prefix = f'r{self.unscored.pk}'
        self.client.post(
            reverse('response_sentiment_update', args=[self.unscored.pk]),
            {f'{prefix}-score': '4', f'{prefix}-label': 'negative'},
        )
        self.unscored.refresh_from_db()
        self.assertIsNone(self.unscored.sentiment)

    def test_delete_response(self) -> None:
        response = self.client.post(reverse('response_delete', args=[self.unscored.pk]))
        self.assertRedirects(response, self._results_url())
        self.assertFalse(ExperimentResponse.objects.filter(pk=self.unscored.pk).exists())

    def test_export_csv(self) -> None:
        response = self.client.get(reverse('results_export', args=[self.experiment.pk]), {'format': 'csv'})

        self.assertEqual(response.status_code, 200)
        self.assertIn('launch-feedback-results-', response['Content-Disposition'])
        text = response.content.decode('utf-8-sig')
        lines = text.strip().splitlines()
        self.assertEqual(lines[0].split(','), [label for _, label in COLUMN_DEFINITIONS])
        self.assertEqual(len(lines), 3)
        self.assertIn('Love it', text)

    def test_export_xlsx(self) -> None:
        response = self.client.get(reverse('results_export', args=[self.experiment.pk]), {'format': 'xlsx'})

        self.assertEqual(response.status_code, 200)
        sheet = load_workbook(BytesIO(response.content)).active
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(len(rows), 3)
        contents = {row[1]: row for row in rows[1:]}
        self.assertEqual(contents['Love it'][0], 'Sarah')
        self.assertEqual(contents['Love it'][3], 0.9)

    def test_export_xlsx_strips_control_characters(self) -> None:
        response_service.create_response(
            experiment_id=self.experiment.pk,
            persona_id=self.sarah.pk,
            content='bell\x07here',
        )

        response = self.client.get(reverse('results_export', args=[self.experiment.pk]), {'format': 'xlsx'})

        self.assertEqual(response.status_code, 200)
        sheet = load_workbook(BytesIO(response.content)).active
        contents = [row[1] for row in sheet.iter_rows(min_row=2, values_only=True)]
        self.assertIn('bellhere', contents)

    def test_export_unknown_format(self) -> None:
        response = self.client.get(reverse('results_export', args=[self.experiment.pk]), {'format': 'pdf'})
        self.assertRedirects(response, self._results_url())

    def test_other_users_cannot_export(self) -> None:
        stranger = User.objects.create_user('stranger@example.com', password='Unheard-pass-2024!')
        self.client.force_login(stranger)
        response = self.client.get(reverse('results_export', args=[self.experiment.pk]))
        self.assertEqual(response.status_code, 404)
