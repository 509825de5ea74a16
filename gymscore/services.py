from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import models
from .cache import cache
from .constants import DEFAULT_EVENTS
from .records import (
    AthleteRecord,
    CompetitionRecord,
    EventRecord,
    JudgeRecord,
    RoutineRecord,
    RoutineWithRelations,
)
from .schemas import (
    AthleteCreate,
    AthleteUpdate,
    CompetitionCreate,
    CompetitionUpdate,
    EventCreate,
    JudgeCreate,
    RoutineScoreInput,
    ScoreCreate,
)
from .scoring import final_score, parse_score
from .security import hash_password, verify_password
from .settings import settings

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """The database rejected or failed a write."""


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning("%s rejected by database: %s", action, e.orig)
        raise BackendError(f"Could not {action}: conflicting or missing record") from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("%s failed", action)
        raise BackendError(f"Could not {action}. Please try again.") from e

# ---------------------------
# Users / auth
# ---------------------------

def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()

def ensure_admin_user(session: Session) -> None:
    """Ensure the bootstrap account (from settings) exists in DB."""
    email = _normalize_email(settings.GYM_ADMIN_EMAIL)
    existing = session.execute(select(models.User).where(models.User.email == email)).scalar_one_or_none()
    if existing:
        if not verify_password(settings.GYM_ADMIN_PASSWORD, existing.password_hash):
            existing.password_hash = hash_password(settings.GYM_ADMIN_PASSWORD)
            _commit(session, "update admin account")
        return
    session.add(models.User(email=email, password_hash=hash_password(settings.GYM_ADMIN_PASSWORD)))
    _commit(session, "create admin account")
    logger.info("created bootstrap account %s", email)

def create_user(session: Session, email: str, password: str) -> models.User:
    email = _normalize_email(email)
    if "@" not in email:
        raise ValueError("A valid email address is required")
    if len(password or "") < 6:
        raise ValueError("Password must be at least 6 characters")
    if session.execute(select(models.User).where(models.User.email == email)).scalar_one_or_none():
        raise ValueError("An account with this email already exists")
    u = models.User(email=email, password_hash=hash_password(password))
    session.add(u)
    _commit(session, "create account")
    logger.info("registered user %s", email)
    return u

def authenticate_user(session: Session, email: str, password: str) -> Optional[models.User]:
    u = session.execute(
        select(models.User).where(models.User.email == _normalize_email(email))
    ).scalar_one_or_none()
    if not u:
        return None
    if verify_password(password, u.password_hash):
        return u
    return None

# ---------------------------
# Competitions
# ---------------------------

def list_competitions(session: Session, user_id: int) -> list[CompetitionRecord]:
    def load():
        rows = session.execute(
            select(models.Competition)
            .where(models.Competition.user_id == user_id)
            .order_by(models.Competition.start_date.asc(), models.Competition.id.asc())
        ).scalars().all()
        return tuple(CompetitionRecord.from_model(c) for c in rows)
    return list(cache.get_or_load(("competitions", user_id), load))

def get_competition(session: Session, competition_id: int) -> Optional[CompetitionRecord]:
    def load():
        c = session.get(models.Competition, competition_id)
        return CompetitionRecord.from_model(c) if c else None
    return cache.get_or_load(("competitions", "by_id", competition_id), load)

def create_competition(session: Session, payload: CompetitionCreate, user_id: int) -> CompetitionRecord:
    c = models.Competition(
        name=payload.name,
        location=payload.location,
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=payload.status,
        user_id=user_id,
    )
    session.add(c)
    _commit(session, "create competition")
    cache.invalidate("competitions")
    logger.info("created competition %s (%s)", c.id, c.name)
    return CompetitionRecord.from_model(c)

def update_competition(session: Session, competition_id: int, payload: CompetitionUpdate) -> CompetitionRecord:
    c = session.get(models.Competition, competition_id)
    if not c:
        raise ValueError("Competition not found")
    c.name = payload.name
    c.location = payload.location
    c.start_date = payload.start_date
    # a cleared end date collapses onto the start date
    c.end_date = payload.end_date or payload.start_date
    c.status = payload.status
    _commit(session, "update competition")
    cache.invalidate("competitions")
    return CompetitionRecord.from_model(c)

def delete_competition(session: Session, competition_id: int) -> None:
    c = session.get(models.Competition, competition_id)
    if not c:
        raise ValueError("Competition not found")
    session.delete(c)
    _commit(session, "delete competition")
    cache.invalidate("competitions")
    cache.invalidate("routines", competition_id)
    logger.info("deleted competition %s", competition_id)

# ---------------------------
# Athletes
# ---------------------------

def list_athletes(session: Session) -> list[AthleteRecord]:
    def load():
        rows = session.execute(
            select(models.Athlete).order_by(models.Athlete.last_name.asc(), models.Athlete.first_name.asc())
        ).scalars().all()
        return tuple(AthleteRecord.from_model(a) for a in rows)
    return list(cache.get_or_load(("athletes",), load))

def get_athlete(session: Session, athlete_id: int) -> Optional[AthleteRecord]:
    a = session.get(models.Athlete, athlete_id)
    return AthleteRecord.from_model(a) if a else None

def filter_athletes(athletes: Iterable[AthleteRecord], search: str = "", gender: str = "all") -> list[AthleteRecord]:
    """Case-insensitive search on name, club and level plus an optional gender filter."""
    term = (search or "").strip().lower()
    out = []
    for a in athletes:
        if gender in ("male", "female") and a.gender != gender:
            continue
        if term:
            haystack = (a.full_name.lower(), (a.club or "").lower(), (a.level or "").lower())
            if not any(term in h for h in haystack):
                continue
        out.append(a)
    return out

def create_athlete(session: Session, payload: AthleteCreate) -> AthleteRecord:
    a = models.Athlete(
        first_name=payload.first_name,
        last_name=payload.last_name,
        gender=payload.gender,
        club=payload.club,
        level=payload.level,
        age_group=payload.age_group,
    )
    session.add(a)
    _commit(session, "create athlete")
    cache.invalidate("athletes")
    logger.info("created athlete %s (%s %s)", a.id, a.first_name, a.last_name)
    return AthleteRecord.from_model(a)

def update_athlete(session: Session, athlete_id: int, payload: AthleteUpdate) -> AthleteRecord:
    a = session.get(models.Athlete, athlete_id)
    if not a:
        raise ValueError("Athlete not found")
    a.first_name = payload.first_name
    a.last_name = payload.last_name
    a.gender = payload.gender
    a.club = payload.club
    a.level = payload.level
    a.age_group = payload.age_group
    _commit(session, "update athlete")
    cache.invalidate("athletes")
    cache.invalidate("routines")
    return AthleteRecord.from_model(a)

def delete_athlete(session: Session, athlete_id: int) -> None:
    a = session.get(models.Athlete, athlete_id)
    if not a:
        raise ValueError("Athlete not found")
    session.delete(a)
    _commit(session, "delete athlete")
    cache.invalidate("athletes")
    cache.invalidate("routines")
    logger.info("deleted athlete %s", athlete_id)

# ---------------------------
# Events
# ---------------------------

def list_events(session: Session, gender: Optional[str] = None) -> list[EventRecord]:
    def load():
        q = select(models.Event).order_by(models.Event.gender.asc(), models.Event.display_order.asc(), models.Event.id.asc())
        if gender:
            q = q.where(models.Event.gender == gender)
        return tuple(EventRecord.from_model(e) for e in session.execute(q).scalars().all())
    return list(cache.get_or_load(("events", gender), load))

def get_event(session: Session, event_id: int) -> Optional[EventRecord]:
    e = session.get(models.Event, event_id)
    return EventRecord.from_model(e) if e else None

def create_event(session: Session, payload: EventCreate) -> EventRecord:
    existing = session.execute(
        select(models.Event).where(and_(models.Event.gender == payload.gender, models.Event.code == payload.code))
    ).scalar_one_or_none()
    if existing:
        raise ValueError(f"Event {payload.code} already exists for {payload.gender}")
    e = models.Event(
        name=payload.name,
        code=payload.code,
        gender=payload.gender,
        display_order=payload.display_order,
        max_score=payload.max_score,
    )
    session.add(e)
    _commit(session, "create event")
    cache.invalidate("events")
    return EventRecord.from_model(e)

def delete_event(session: Session, event_id: int) -> None:
    e = session.get(models.Event, event_id)
    if not e:
        raise ValueError("Event not found")
    session.delete(e)
    _commit(session, "delete event")
    cache.invalidate("events")
    cache.invalidate("routines")

def ensure_default_events(session: Session) -> int:
    """Seed the standard artistic apparatus when the events table is empty."""
    count = session.execute(select(func.count(models.Event.id))).scalar_one()
    if count:
        return 0
    for name, code, gender, order, max_score in DEFAULT_EVENTS:
        session.add(models.Event(name=name, code=code, gender=gender, display_order=order, max_score=max_score))
    _commit(session, "seed events")
    cache.invalidate("events")
    logger.info("seeded %d default events", len(DEFAULT_EVENTS))
    return len(DEFAULT_EVENTS)

# ---------------------------
# Judges
# ---------------------------

def list_judges(session: Session) -> list[JudgeRecord]:
    def load():
        rows = session.execute(
            select(models.Judge).order_by(models.Judge.last_name.asc(), models.Judge.first_name.asc())
        ).scalars().all()
        return tuple(JudgeRecord.from_model(j) for j in rows)
    return list(cache.get_or_load(("judges",), load))

def create_judge(session: Session, payload: JudgeCreate) -> JudgeRecord:
    j = models.Judge(
        first_name=payload.first_name,
        last_name=payload.last_name,
        certification_level=payload.certification_level,
    )
    session.add(j)
    _commit(session, "create judge")
    cache.invalidate("judges")
    return JudgeRecord.from_model(j)

def delete_judge(session: Session, judge_id: int) -> None:
    j = session.get(models.Judge, judge_id)
    if not j:
        raise ValueError("Judge not found")
    for r in session.execute(select(models.Routine).where(models.Routine.judge_id == judge_id)).scalars():
        r.judge_id = None
    session.delete(j)
    _commit(session, "delete judge")
    cache.invalidate("judges")
    cache.invalidate("routines")

# ---------------------------
# Routines
# ---------------------------

def list_routines(session: Session, competition_id: int) -> list[RoutineWithRelations]:
    def load():
        rows = session.execute(
            select(models.Routine)
            .options(joinedload(models.Routine.athlete), joinedload(models.Routine.event))
            .where(models.Routine.competition_id == competition_id)
            .order_by(models.Routine.performed_at.desc(), models.Routine.id.desc())
        ).scalars().all()
        return tuple(RoutineWithRelations.from_model(r) for r in rows)
    return list(cache.get_or_load(("routines", competition_id), load))

def routines_by_cell(routines: Iterable[RoutineWithRelations]) -> dict[tuple[int, int], RoutineWithRelations]:
    """(athlete_id, event_id) -> routine, for the scoring grid."""
    out: dict[tuple[int, int], RoutineWithRelations] = {}
    for r in routines:
        out.setdefault((r.athlete.id, r.event.id), r)
    return out

def _resolve_routine_scores(session: Session, payload: RoutineScoreInput) -> tuple[models.Athlete, models.Event, dict]:
    if not session.get(models.Competition, payload.competition_id):
        raise ValueError("Competition not found")
    athlete = session.get(models.Athlete, payload.athlete_id)
    if not athlete:
        raise ValueError("Athlete not found")
    event = session.get(models.Event, payload.event_id)
    if not event:
        raise ValueError("Event not found")
    if athlete.gender != event.gender:
        raise ValueError(f"{event.name} is a {event.gender} event")
    if payload.judge_id is not None and not session.get(models.Judge, payload.judge_id):
        raise ValueError("Judge not found")

    difficulty = parse_score(payload.difficulty)
    execution = parse_score(payload.execution)
    deductions = parse_score(payload.deductions)
    total = final_score(difficulty, execution, deductions)
    if settings.GYM_ENFORCE_MAX_SCORE and event.max_score and total > event.max_score:
        raise ValueError(f"Final score {total:.3f} exceeds the {event.code} maximum of {event.max_score:.3f}")
    return athlete, event, {
        "difficulty_score": difficulty,
        "execution_score": execution,
        "neutral_deductions": deductions,
        "final_score": total,
    }

def create_routine(session: Session, payload: RoutineScoreInput) -> RoutineRecord:
    _athlete, _event, values = _resolve_routine_scores(session, payload)
    r = models.Routine(
        competition_id=payload.competition_id,
        athlete_id=payload.athlete_id,
        event_id=payload.event_id,
        judge_id=payload.judge_id,
        status=payload.status,
        notes=payload.notes,
        performed_at=models.utcnow(),
        **values,
    )
    session.add(r)
    _commit(session, "save score")
    cache.invalidate("routines", payload.competition_id)
    logger.info(
        "routine %s: athlete %s event %s final %.3f",
        r.id, payload.athlete_id, payload.event_id, r.final_score,
    )
    return RoutineRecord.from_model(r)

def update_routine(session: Session, routine_id: int, payload: RoutineScoreInput) -> RoutineRecord:
    r = session.get(models.Routine, routine_id)
    if not r:
        raise ValueError("Routine not found")
    if r.competition_id != payload.competition_id:
        raise ValueError("Routine belongs to another competition")
    _athlete, _event, values = _resolve_routine_scores(session, payload)
    r.athlete_id = payload.athlete_id
    r.event_id = payload.event_id
    r.judge_id = payload.judge_id
    r.status = payload.status
    r.notes = payload.notes
    for k, v in values.items():
        setattr(r, k, v)
    _commit(session, "update score")
    cache.invalidate("routines", payload.competition_id)
    return RoutineRecord.from_model(r)

def save_routine_score(session: Session, payload: RoutineScoreInput) -> RoutineRecord:
    """Create or update the routine for (competition, athlete, event)."""
    existing = session.execute(
        select(models.Routine)
        .where(
            and_(
                models.Routine.competition_id == payload.competition_id,
                models.Routine.athlete_id == payload.athlete_id,
                models.Routine.event_id == payload.event_id,
            )
        )
        .order_by(models.Routine.performed_at.desc(), models.Routine.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if existing:
        return update_routine(session, existing.id, payload)
    return create_routine(session, payload)

def delete_routine(session: Session, routine_id: int, competition_id: Optional[int] = None) -> None:
    """Delete a routine. With ``competition_id`` it must belong to that competition."""
    r = session.get(models.Routine, routine_id)
    if not r or (competition_id is not None and r.competition_id != competition_id):
        raise ValueError("Routine not found")
    competition_id = r.competition_id
    session.delete(r)
    _commit(session, "delete score")
    cache.invalidate("routines", competition_id)

# ---------------------------
# Per-judge scores
# ---------------------------

def record_judge_score(session: Session, payload: ScoreCreate) -> models.Score:
    if not session.get(models.Routine, payload.routine_id):
        raise ValueError("Routine not found")
    if not session.get(models.Judge, payload.judge_id):
        raise ValueError("Judge not found")
    s = models.Score(
        routine_id=payload.routine_id,
        judge_id=payload.judge_id,
        score_type=payload.score_type,
        value=round(payload.value, 3),
        notes=payload.notes,
    )
    session.add(s)
    _commit(session, "save judge score")
    return s

def list_judge_scores(session: Session, routine_id: int) -> list[models.Score]:
    return session.execute(
        select(models.Score).where(models.Score.routine_id == routine_id).order_by(models.Score.id.asc())
    ).scalars().all()
