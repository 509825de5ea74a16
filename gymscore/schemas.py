from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import AGE_GROUPS, COMPETITION_STATUSES, GENDERS, ROUTINE_STATUSES, SCORE_TYPES, STATUS_ALIASES


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class CompetitionCreate(BaseModel):
    name: str
    location: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    status: str = "upcoming"

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Competition name is required")
        return v

    @field_validator("location", "end_date", mode="before")
    @classmethod
    def _optional(cls, v):
        return _blank_to_none(v)

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        v = STATUS_ALIASES.get(v.strip().lower(), v.strip().lower())
        if v not in COMPETITION_STATUSES:
            raise ValueError("Status must be one of: " + ", ".join(COMPETITION_STATUSES))
        return v

    @model_validator(mode="after")
    def _dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class CompetitionUpdate(CompetitionCreate):
    pass


class AthleteCreate(BaseModel):
    first_name: str
    last_name: str
    gender: str
    club: Optional[str] = None
    level: Optional[str] = None
    age_group: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("First and last name are required")
        return v

    @field_validator("gender")
    @classmethod
    def _gender(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in GENDERS:
            raise ValueError("Gender must be 'male' or 'female'")
        return v

    @field_validator("club", "level", "age_group", mode="before")
    @classmethod
    def _optional(cls, v):
        return _blank_to_none(v)

    @field_validator("age_group")
    @classmethod
    def _age_group(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in AGE_GROUPS:
            raise ValueError("Age group must be one of: " + ", ".join(AGE_GROUPS))
        return v


class AthleteUpdate(AthleteCreate):
    pass


class EventCreate(BaseModel):
    name: str
    code: str
    gender: str
    display_order: int = 0
    max_score: float = Field(default=20.0, gt=0)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Event name is required")
        return v

    @field_validator("code")
    @classmethod
    def _code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Event code is required")
        return v

    @field_validator("gender")
    @classmethod
    def _gender(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in GENDERS:
            raise ValueError("Gender must be 'male' or 'female'")
        return v


class JudgeCreate(BaseModel):
    first_name: str
    last_name: str
    certification_level: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("First and last name are required")
        return v

    @field_validator("certification_level", mode="before")
    @classmethod
    def _optional(cls, v):
        return _blank_to_none(v)


class RoutineScoreInput(BaseModel):
    competition_id: int
    athlete_id: int
    event_id: int
    judge_id: Optional[int] = None
    difficulty: str = ""  # raw form values, parsed by scoring.parse_score
    execution: str = ""
    deductions: str = ""
    status: str = "completed"
    notes: Optional[str] = None

    @field_validator("judge_id", "notes", mode="before")
    @classmethod
    def _optional(cls, v):
        return _blank_to_none(v)

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ROUTINE_STATUSES:
            raise ValueError("Status must be one of: " + ", ".join(ROUTINE_STATUSES))
        return v


class ScoreCreate(BaseModel):
    routine_id: int
    judge_id: int
    score_type: str
    value: float = Field(ge=0)
    notes: Optional[str] = None

    @field_validator("score_type")
    @classmethod
    def _type(cls, v: str) -> str:
        if v not in SCORE_TYPES:
            raise ValueError("Score type must be one of: " + ", ".join(SCORE_TYPES))
        return v


def describe_error(exc: Exception) -> str:
    """Human-readable message for a ValueError or pydantic ValidationError."""
    errors = getattr(exc, "errors", None)
    if callable(errors):
        msgs = []
        for err in errors():
            msg = str(err.get("msg", ""))
            if msg.startswith("Value error, "):
                msgs.append(msg[len("Value error, "):])
                continue
            loc = [str(part) for part in err.get("loc", ()) if part != ""]
            msgs.append(f"{loc[-1]}: {msg}" if loc else msg)
        return "; ".join(msgs)
    return str(exc)
