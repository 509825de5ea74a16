"""Flatten competition routines into CSV-ready rows."""
from __future__ import annotations

import csv
import re
from io import StringIO
from typing import Iterable, Sequence

from .records import CompetitionRecord, EventRecord, RoutineWithRelations
from .scoring import aggregate_athletes, format_score, group_by_division, rank

EXPORT_KINDS = ("detailed", "summary", "leaderboard")

_FILENAME_SUFFIX = {
    "detailed": "detailed_results",
    "summary": "summary_results",
    "leaderboard": "leaderboard",
}


class NoResultsToExport(ValueError):
    pass


def _require_routines(routines: Sequence[RoutineWithRelations]) -> None:
    if not routines:
        raise NoResultsToExport("No data to export: no routines have been scored for this competition")


def _competition_columns(competition: CompetitionRecord) -> dict:
    return {
        "competition_name": competition.name,
        "competition_date": competition.start_date.isoformat(),
    }


def detailed_rows(competition: CompetitionRecord, routines: Sequence[RoutineWithRelations]) -> list[dict]:
    _require_routines(routines)
    rows = []
    for r in routines:
        rows.append({
            **_competition_columns(competition),
            "athlete_name": r.athlete.full_name,
            "athlete_gender": r.athlete.gender,
            "athlete_club": r.athlete.club or "",
            "athlete_level": r.athlete.level or "",
            "athlete_age_group": r.athlete.age_group or "",
            "event_name": r.event.name,
            "event_code": r.event.code,
            "difficulty_score": format_score(r.routine.difficulty_score),
            "execution_score": format_score(r.routine.execution_score),
            "neutral_deductions": format_score(r.routine.neutral_deductions),
            "final_score": format_score(r.routine.final_score),
            "status": r.routine.status,
            "performed_at": r.routine.performed_at.strftime("%Y-%m-%d %H:%M:%S"),
            "notes": r.routine.notes or "",
        })
    return rows


def _event_codes(events: Iterable[EventRecord]) -> list[str]:
    codes: list[str] = []
    for e in sorted(events, key=lambda e: (e.display_order, e.id)):
        if e.code not in codes:
            codes.append(e.code)
    return codes


def summary_rows(
    competition: CompetitionRecord,
    routines: Sequence[RoutineWithRelations],
    events: Iterable[EventRecord],
) -> list[dict]:
    """One row per athlete with a ``<CODE>_score`` column for every known event code."""
    _require_routines(routines)
    codes = _event_codes(events)
    rows = []
    for s in aggregate_athletes(routines):
        row = {
            **_competition_columns(competition),
            "athlete_name": s.name,
            "athlete_gender": s.athlete.gender,
            "athlete_club": s.athlete.club or "",
            "athlete_level": s.athlete.level or "",
            "athlete_age_group": s.athlete.age_group or "",
            "total_score": format_score(s.total_score),
            "event_count": s.event_count,
        }
        for code in codes:
            row[f"{code}_score"] = format_score(s.scores.get(code))
        rows.append(row)
    return rows


def _division_name(gender: str) -> str:
    return f"{gender.capitalize()}'s All-Around"


def leaderboard_rows(
    competition: CompetitionRecord,
    routines: Sequence[RoutineWithRelations],
    by_division: bool = False,
) -> list[dict]:
    """Ranked rows per gender, or per gender/level/age group with ``by_division``."""
    _require_routines(routines)
    summaries = aggregate_athletes(routines)
    buckets: list[tuple[str, list]] = []
    if by_division:
        for gender, levels in group_by_division(summaries).items():
            for level, ages in levels.items():
                for age, ranked in ages.items():
                    buckets.append((f"{_division_name(gender)} - {level} - {age}", ranked))
    else:
        by_gender: dict[str, list] = {}
        for s in summaries:
            by_gender.setdefault(s.athlete.gender, []).append(s)
        for gender, athletes in by_gender.items():
            buckets.append((_division_name(gender), rank(athletes)))

    rows = []
    for division, ranked in buckets:
        for s in ranked:
            rows.append({
                **_competition_columns(competition),
                "division": division,
                "rank": s.rank,
                "athlete_name": s.name,
                "athlete_club": s.athlete.club or "",
                "athlete_level": s.athlete.level or "",
                "total_score": format_score(s.total_score),
                "event_count": s.event_count,
            })
    return rows


def build_export(
    kind: str,
    competition: CompetitionRecord,
    routines: Sequence[RoutineWithRelations],
    events: Iterable[EventRecord] = (),
    by_division: bool = False,
) -> list[dict]:
    if kind == "detailed":
        return detailed_rows(competition, routines)
    if kind == "summary":
        return summary_rows(competition, routines, events)
    if kind == "leaderboard":
        return leaderboard_rows(competition, routines, by_division=by_division)
    raise ValueError(f"Unknown export type: {kind}")


def to_csv(rows: Sequence[dict]) -> str:
    if not rows:
        raise NoResultsToExport("No data to export")
    buf = StringIO()
    w = csv.DictWriter(buf, fieldnames=list(rows[0].keys()))
    w.writeheader()
    w.writerows(rows)
    return buf.getvalue()


def export_filename(competition_name: str, kind: str) -> str:
    safe = re.sub(r"\s+", "_", competition_name.strip())
    return f"{safe}_{_FILENAME_SUFFIX[kind]}.csv"
