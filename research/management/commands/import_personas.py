"""Import personas for a user from an Excel workbook.

The workbook uses the same template as the download on the personas page
(see :mod:`research.services.persona_workbook`).  Rows are validated before
anything is written; a single invalid row aborts the whole import.

Usage::

    python manage.py import_personas personas.xlsx --user jane@example.com
"""

from __future__ import annotations

from pathlib import Path

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError

from research.services.persona_workbook import PersonaWorkbookError, import_personas_workbook


class Command(BaseCommand):
    help = "Create personas for a user from an Excel workbook."

    def add_arguments(self, parser):
        parser.add_argument("workbook", help="Path to the .xlsx file to import.")
        parser.add_argument(
            "--user",
            required=True,
            help="Email address of the user who will own the personas.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Validate the workbook without saving any personas.",
        )

    def handle(self, *args, **options):
        path = Path(options["workbook"])
        if not path.is_file():
            raise CommandError(f"Workbook not found: {path}")

        email = options["user"].strip().lower()
        owner = User.objects.filter(username=email).first()
        if owner is None:
            raise CommandError(f"No user with email {email}.")

        self.stdout.write(self.style.NOTICE(f"Reading {path}..."))
        try:
            with path.open("rb") as handle:
                result = import_personas_workbook(handle, owner=owner, dry_run=options["dry_run"])
        except PersonaWorkbookError as exc:
            raise CommandError(str(exc)) from exc

        if result.errors:
            for error in result.errors:
                self.stderr.write(self.style.ERROR(error))
            raise CommandError(f"{len(result.errors)} rows failed validation; nothing was imported.")

        if options["dry_run"]:
            self.stdout.write(self.style.WARNING(f"Dry run: {result.created} personas would be imported."))
            return
        self.stdout.write(self.style.SUCCESS(f"Imported {result.created} personas for {email}."))
