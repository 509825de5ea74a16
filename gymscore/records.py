"""Read-side records handed out by the data access layer.

These are plain frozen dataclasses rather than ORM instances so they can be
cached across requests and passed to scoring/export code without a live
session.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from . import models


@dataclass(frozen=True)
class CompetitionRecord:
    id: int
    name: str
    location: Optional[str]
    start_date: date
    end_date: Optional[date]
    status: str
    user_id: Optional[int]
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, c: models.Competition) -> "CompetitionRecord":
        return cls(
            id=c.id,
            name=c.name,
            location=c.location,
            start_date=c.start_date,
            end_date=c.end_date,
            status=c.status,
            user_id=c.user_id,
            created_at=c.created_at,
        )


@dataclass(frozen=True)
class AthleteRecord:
    id: int
    first_name: str
    last_name: str
    gender: str
    club: Optional[str] = None
    level: Optional[str] = None
    age_group: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    def from_model(cls, a: models.Athlete) -> "AthleteRecord":
        return cls(
            id=a.id,
            first_name=a.first_name,
            last_name=a.last_name,
            gender=a.gender,
            club=a.club,
            level=a.level,
            age_group=a.age_group,
        )


@dataclass(frozen=True)
class EventRecord:
    id: int
    name: str
    code: str
    gender: str
    display_order: int
    max_score: float

    @classmethod
    def from_model(cls, e: models.Event) -> "EventRecord":
        return cls(
            id=e.id,
            name=e.name,
            code=e.code,
            gender=e.gender,
            display_order=e.display_order,
            max_score=e.max_score,
        )


@dataclass(frozen=True)
class JudgeRecord:
    id: int
    first_name: str
    last_name: str
    certification_level: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    def from_model(cls, j: models.Judge) -> "JudgeRecord":
        return cls(
            id=j.id,
            first_name=j.first_name,
            last_name=j.last_name,
            certification_level=j.certification_level,
        )


@dataclass(frozen=True)
class RoutineRecord:
    id: int
    competition_id: int
    athlete_id: int
    event_id: int
    judge_id: Optional[int]
    difficulty_score: float
    execution_score: float
    neutral_deductions: float
    final_score: float
    status: str
    performed_at: datetime
    notes: Optional[str] = None

    @classmethod
    def from_model(cls, r: models.Routine) -> "RoutineRecord":
        return cls(
            id=r.id,
            competition_id=r.competition_id,
            athlete_id=r.athlete_id,
            event_id=r.event_id,
            judge_id=r.judge_id,
            difficulty_score=r.difficulty_score,
            execution_score=r.execution_score,
            neutral_deductions=r.neutral_deductions,
            final_score=r.final_score,
            status=r.status,
            performed_at=r.performed_at,
            notes=r.notes,
        )


@dataclass(frozen=True)
class RoutineWithRelations:
    routine: RoutineRecord
    athlete: AthleteRecord
    event: EventRecord

    @property
    def final_score(self) -> float:
        return self.routine.final_score

    @classmethod
    def from_model(cls, r: models.Routine) -> "RoutineWithRelations":
        return cls(
            routine=RoutineRecord.from_model(r),
            athlete=AthleteRecord.from_model(r.athlete),
            event=EventRecord.from_model(r.event),
        )
