"""Helpers for exporting and importing persona Excel workbooks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import transaction
from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font

from research.models import Persona, normalise_tags
from research.services.activity import log_activity

logger = logging.getLogger(__name__)

COLUMN_DEFINITIONS: Sequence[Tuple[str, str]] = [
    ('name', 'Name'),
    ('description', 'Description'),
    ('age', 'Age'),
    ('gender', 'Gender'),
    ('occupation', 'Occupation'),
    ('interests', 'Interests'),
    ('pain_points', 'Pain Points'),
    ('goals', 'Goals'),
]

TAG_COLUMNS = {'interests', 'pain_points', 'goals'}


class PersonaWorkbookError(Exception):
    """Raised when workbook import/export fails."""


@dataclass
class WorkbookImportResult:
    created: int = 0
    errors: List[str] = field(default_factory=list)


def export_personas_workbook(personas: Iterable[Persona]) -> BytesIO:
    """Return a BytesIO containing the workbook for the provided personas."""

    wb = Workbook()
    ws = wb.active
    ws.title = 'Personas'
    ws.append([label for _, label in COLUMN_DEFINITIONS])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for persona in personas:
        row: List[Any] = []
        for column, _ in COLUMN_DEFINITIONS:
            value = getattr(persona, column)
            if column in TAG_COLUMNS:
                value = ', '.join(value or [])
            if isinstance(value, str):
                value = ILLEGAL_CHARACTERS_RE.sub('', value)
            row.append(value)
        ws.append(row)
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def _cell_text(value: object) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _row_to_persona(owner: User, values: Dict[str, object]) -> Persona:
    age_text = _cell_text(values.get('age'))
    persona = Persona(
        owner=owner,
        name=_cell_text(values.get('name')),
        description=_cell_text(values.get('description')),
        age=age_text or None,
        gender=_cell_text(values.get('gender')),
        occupation=_cell_text(values.get('occupation')),
        interests=normalise_tags(_cell_text(values.get('interests'))),
        pain_points=normalise_tags(_cell_text(values.get('pain_points'))),
        goals=normalise_tags(_cell_text(values.get('goals'))),
    )
    persona.full_clean()
    return persona


def _format_errors(exc: ValidationError) -> str:
    if hasattr(exc, 'error_dict'):
        return '; '.join(
            f"{name}: {' '.join(messages)}" for name, messages in exc.message_dict.items()
        )
    return ' '.join(exc.messages)


def import_personas_workbook(
    workbook_file,
    *,
    owner: User,
    actor: User | None = None,
    dry_run: bool = False,
) -> WorkbookImportResult:
    """Create personas for ``owner`` from the uploaded workbook.

    Every data row is validated first.  When any row fails nothing is
    written and the row-numbered errors are returned; otherwise all rows
    are created in one transaction.
    """

    result = WorkbookImportResult()
    try:
        wb = load_workbook(workbook_file, read_only=True, data_only=True)
    except Exception as exc:
        raise PersonaWorkbookError('Unable to read the uploaded workbook.') from exc

    ws = wb.active
    rows = list(ws.iter_rows(values_only=True))
    wb.close()
    if not rows:
        raise PersonaWorkbookError('The workbook is empty.')
    header = [str(value).strip() if value is not None else '' for value in rows[0]]
    expected_header = [label for _, label in COLUMN_DEFINITIONS]
    if header[: len(expected_header)] != expected_header:
        raise PersonaWorkbookError(
            'The workbook headers do not match the expected template: '
            + ', '.join(expected_header)
        )

    personas: List[Persona] = []
    for row_number, raw_row in enumerate(rows[1:], start=2):
        if not any(_cell_text(value) for value in raw_row):
            continue
        values = {
            column: raw_row[index] if index < len(raw_row) else None
            for index, (column, _) in enumerate(COLUMN_DEFINITIONS)
        }
        try:
            personas.append(_row_to_persona(owner, values))
        except ValidationError as exc:
            result.errors.append(f"Row {row_number}: {_format_errors(exc)}")

    if not personas and not result.errors:
        raise PersonaWorkbookError('The workbook does not contain any persona rows.')
    if result.errors or dry_run:
        result.created = 0 if result.errors else len(personas)
        return result

    with transaction.atomic():
        for persona in personas:
            persona.save()
    result.created = len(personas)
    logger.info('Imported %s personas for user %s', result.created, owner.pk)
    log_activity(actor, 'Imported personas', f"{result.created} personas from workbook")
    return result
