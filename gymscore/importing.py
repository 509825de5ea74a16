"""Athlete CSV import: validate rows, then create athletes one by one."""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from io import StringIO
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from . import services
from .constants import AGE_GROUPS, GENDERS
from .schemas import AthleteCreate

logger = logging.getLogger(__name__)

IMPORT_COLUMNS = ["first_name", "last_name", "gender", "age", "club", "level"]

TEMPLATE_ROWS = [
    {"first_name": "John", "last_name": "Doe", "gender": "male", "age": "14+ years", "club": "City Gymnastics", "level": "Level 10"},
    {"first_name": "Jane", "last_name": "Smith", "gender": "female", "age": "12 years", "club": "Elite Gymnastics", "level": "Level 9"},
]


@dataclass
class AthleteRow:
    first_name: str
    last_name: str
    gender: str
    age_group: Optional[str] = None
    club: Optional[str] = None
    level: Optional[str] = None

    def to_payload(self) -> AthleteCreate:
        return AthleteCreate(
            first_name=self.first_name,
            last_name=self.last_name,
            gender=self.gender,
            age_group=self.age_group,
            club=self.club,
            level=self.level,
        )


@dataclass
class ImportPreview:
    valid: list[AthleteRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    success: int = 0
    failed: int = 0


def _cell(row: dict, key: str) -> str:
    return (row.get(key) or "").strip()


def validate_rows(rows: Iterable[dict]) -> ImportPreview:
    """Check each parsed CSV row. Any problem excludes the whole row."""
    preview = ImportPreview()
    for index, row in enumerate(rows):
        row_number = index + 2  # header is line 1
        problems = []
        first_name = _cell(row, "first_name")
        last_name = _cell(row, "last_name")
        gender = _cell(row, "gender").lower()
        age = _cell(row, "age")
        if not first_name:
            problems.append(f"Row {row_number}: First name is required")
        if not last_name:
            problems.append(f"Row {row_number}: Last name is required")
        if gender not in GENDERS:
            problems.append(f"Row {row_number}: Gender must be 'male' or 'female'")
        # exact match, no normalisation
        if age and age not in AGE_GROUPS:
            problems.append(f"Row {row_number}: Age must be one of: {', '.join(AGE_GROUPS)}")
        if problems:
            preview.errors.extend(problems)
            continue
        preview.valid.append(
            AthleteRow(
                first_name=first_name,
                last_name=last_name,
                gender=gender,
                age_group=age or None,
                club=_cell(row, "club") or None,
                level=_cell(row, "level") or None,
            )
        )
    return preview


def _is_blank(row: dict) -> bool:
    return not any((v or "").strip() for k, v in row.items() if isinstance(v, str))


def parse_athletes_csv(text: str) -> ImportPreview:
    reader = csv.DictReader(StringIO(text.lstrip("\ufeff")))
    if not reader.fieldnames:
        return ImportPreview(errors=["The CSV file is empty"])
    missing = [c for c in ("first_name", "last_name", "gender") if c not in reader.fieldnames]
    if missing:
        return ImportPreview(errors=["Missing required column(s): " + ", ".join(missing)])
    rows = [row for row in reader if not _is_blank(row)]
    return validate_rows(rows)


def import_athletes(session: Session, rows: Iterable[AthleteRow]) -> ImportResult:
    """Create athletes sequentially. Earlier successes stay if a later row fails."""
    result = ImportResult()
    for row in rows:
        try:
            services.create_athlete(session, row.to_payload())
            result.success += 1
        except (ValueError, services.BackendError) as e:
            result.failed += 1
            logger.warning("could not import athlete %s %s: %s", row.first_name, row.last_name, e)
    logger.info("athlete import finished: %d imported, %d failed", result.success, result.failed)
    return result


def template_csv() -> str:
    buf = StringIO()
    w = csv.DictWriter(buf, fieldnames=IMPORT_COLUMNS)
    w.writeheader()
    w.writerows(TEMPLATE_ROWS)
    return buf.getvalue()
