"""CSV and Excel exports of an experiment's responses."""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass
from io import BytesIO, StringIO
from typing import Any, List, Sequence, Tuple

from django.utils import timezone
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font

from research.models import Experiment, ExperimentResponse
from research.services.responses import list_responses_with_details

EXPORT_FORMATS = ('csv', 'xlsx')

COLUMN_DEFINITIONS: Sequence[Tuple[str, str]] = [
    ('persona', 'Persona'),
    ('content', 'Response'),
    ('sentiment_label', 'Sentiment'),
    ('sentiment_score', 'Sentiment Score'),
    ('tokens', 'Tokens'),
    ('duration', 'Duration'),
    ('model', 'Model'),
    ('created_at', 'Created At'),
]

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

_FILENAME_SANITIZER = re.compile(r'[^A-Za-z0-9_-]+')


class ResultsExportError(Exception):
    """Raised when an export cannot be produced."""


@dataclass
class ResultsExport:
    filename: str
    content_type: str
    content: bytes


def _worksheet_value(value: Any) -> Any:
    """Drop control characters that Excel worksheets cannot store."""
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub('', value)
    return value


def _row_values(response: ExperimentResponse) -> List[Any]:
    persona = response.persona.name if response.persona else '(deleted persona)'
    return [
        persona,
        response.content,
        response.sentiment_label,
        response.sentiment_score,
        response.tokens,
        response.duration,
        response.model_name,
        timezone.localtime(response.created_at).strftime('%Y-%m-%d %H:%M:%S'),
    ]


def _base_filename(experiment: Experiment) -> str:
    slug = _FILENAME_SANITIZER.sub('-', experiment.title).strip('-').lower() or 'experiment'
    stamp = timezone.now().strftime('%Y%m%d-%H%M%S')
    return f"{slug[:60]}-results-{stamp}"


def export_results(experiment: Experiment, export_format: str = 'csv') -> ResultsExport:
    """Render the experiment's detailed responses in ``export_format``."""

    export_format = (export_format or 'csv').lower()
    if export_format not in EXPORT_FORMATS:
        raise ResultsExportError(f"Unsupported export format: {export_format}.")
    headers = [label for _, label in COLUMN_DEFINITIONS]
    rows = [_row_values(response) for response in list_responses_with_details(experiment.pk)]
    base_name = _base_filename(experiment)

    if export_format == 'xlsx':
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = 'Responses'
        worksheet.append(headers)
        for cell in worksheet[1]:
            cell.font = Font(bold=True)
        for row in rows:
            worksheet.append([_worksheet_value(value) for value in row])
        stream = BytesIO()
        workbook.save(stream)
        return ResultsExport(f"{base_name}.xlsx", XLSX_CONTENT_TYPE, stream.getvalue())

    output = StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(headers)
    for row in rows:
        writer.writerow(['' if value is None else value for value in row])
    # BOM so spreadsheet tools detect UTF-8.
    content = '\ufeff' + output.getvalue()
    return ResultsExport(f"{base_name}.csv", 'text/csv; charset=utf-8', content.encode('utf-8'))
