"""Score arithmetic and leaderboard aggregation."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .constants import AGE_GROUPS, GENDERS, LEVEL_ORDER, NO_AGE_GROUP, NO_LEVEL
from .records import AthleteRecord, RoutineWithRelations


def parse_score(value) -> float:
    """Parse a score field from a form. Blank or garbage counts as 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        s = str(value).strip()
        if not s:
            return 0.0
        try:
            parsed = float(s)
        except ValueError:
            return 0.0
    if not math.isfinite(parsed):  # nan, inf
        return 0.0
    if parsed < 0:
        raise ValueError("Scores cannot be negative")
    return round(parsed, 3)


def final_score(difficulty: float, execution: float, deductions: float) -> float:
    return round(max(0.0, (difficulty or 0) + (execution or 0) - (deductions or 0)), 3)


def format_score(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value:.3f}"


@dataclass
class AthleteSummary:
    athlete: AthleteRecord
    total_score: float = 0.0
    event_count: int = 0
    scores: dict[str, float] = field(default_factory=dict)
    rank: int = 0

    @property
    def name(self) -> str:
        return self.athlete.full_name


def aggregate_athletes(routines: Iterable[RoutineWithRelations]) -> list[AthleteSummary]:
    """Fold routines into one summary per athlete, in first-seen order."""
    acc: dict[int, AthleteSummary] = {}
    for r in routines:
        summary = acc.get(r.athlete.id)
        if summary is None:
            summary = acc[r.athlete.id] = AthleteSummary(athlete=r.athlete)
        summary.total_score = round(summary.total_score + r.final_score, 3)
        summary.event_count += 1
        # duplicate event codes: the later routine wins
        summary.scores[r.event.code] = r.final_score
    return list(acc.values())


def rank(summaries: Iterable[AthleteSummary]) -> list[AthleteSummary]:
    """Sort by total descending and number positions 1..n. Ties keep input order."""
    ordered = sorted(summaries, key=lambda s: -s.total_score)
    for position, s in enumerate(ordered, start=1):
        s.rank = position
    return ordered


def _bucket_order(labels: Iterable[str], known: tuple[str, ...], sentinel: str) -> list[str]:
    present = set(labels)
    ordered = [label for label in known if label in present]
    ordered += sorted(label for label in present if label not in known and label != sentinel)
    if sentinel in present:
        ordered.append(sentinel)
    return ordered


@dataclass
class LeaderboardGroup:
    gender: str
    level: str
    age_group: str
    athletes: list[AthleteSummary]

    @property
    def title(self) -> str:
        return f"{self.gender.capitalize()} · {self.level} · {self.age_group}"


def level_label(athlete: AthleteRecord) -> str:
    return (athlete.level or "").strip() or NO_LEVEL


def age_group_label(athlete: AthleteRecord) -> str:
    return (athlete.age_group or "").strip() or NO_AGE_GROUP


def group_by_division(
    summaries: Iterable[AthleteSummary],
) -> dict[str, dict[str, dict[str, list[AthleteSummary]]]]:
    """gender -> level -> age group -> ranked summaries, in display order."""
    raw: dict[str, dict[str, dict[str, list[AthleteSummary]]]] = {}
    for s in summaries:
        raw.setdefault(s.athlete.gender, {}).setdefault(level_label(s.athlete), {}).setdefault(
            age_group_label(s.athlete), []
        ).append(s)

    out: dict[str, dict[str, dict[str, list[AthleteSummary]]]] = {}
    for gender in _bucket_order(raw.keys(), GENDERS, ""):
        levels = raw[gender]
        out[gender] = {}
        for level in _bucket_order(levels.keys(), LEVEL_ORDER, NO_LEVEL):
            ages = levels[level]
            out[gender][level] = {
                age: rank(ages[age]) for age in _bucket_order(ages.keys(), AGE_GROUPS, NO_AGE_GROUP)
            }
    return out


def build_leaderboard(routines: Iterable[RoutineWithRelations]) -> list[LeaderboardGroup]:
    """Flattened leaderboard: one group per non-empty gender/level/age-group bucket."""
    grouped = group_by_division(aggregate_athletes(routines))
    return [
        LeaderboardGroup(gender=gender, level=level, age_group=age, athletes=athletes)
        for gender, levels in grouped.items()
        for level, ages in levels.items()
        for age, athletes in ages.items()
    ]
