"""Builders for read-side records used by the pure scoring/export tests."""
from datetime import date, datetime

from gymscore.records import (
    AthleteRecord,
    CompetitionRecord,
    EventRecord,
    RoutineRecord,
    RoutineWithRelations,
)
from gymscore.scoring import final_score

_ids = {"routine": 0}

COMPETITION = CompetitionRecord(
    id=1,
    name="Spring  Open 2024",
    location="Ghent",
    start_date=date(2024, 3, 9),
    end_date=date(2024, 3, 10),
    status="active",
    user_id=1,
)

VT = EventRecord(id=1, name="Vault", code="VT", gender="female", display_order=1, max_score=20.0)
UB = EventRecord(id=2, name="Uneven Bars", code="UB", gender="female", display_order=2, max_score=20.0)
BB = EventRecord(id=3, name="Balance Beam", code="BB", gender="female", display_order=3, max_score=20.0)
FX_M = EventRecord(id=4, name="Floor Exercise", code="FX", gender="male", display_order=1, max_score=20.0)


def athlete(id, first, last, gender="female", level=None, age_group=None, club=None):
    return AthleteRecord(
        id=id,
        first_name=first,
        last_name=last,
        gender=gender,
        club=club,
        level=level,
        age_group=age_group,
    )


def routine(a, event, d, e, n=0.0, notes=None):
    _ids["routine"] += 1
    return RoutineWithRelations(
        routine=RoutineRecord(
            id=_ids["routine"],
            competition_id=COMPETITION.id,
            athlete_id=a.id,
            event_id=event.id,
            judge_id=None,
            difficulty_score=d,
            execution_score=e,
            neutral_deductions=n,
            final_score=final_score(d, e, n),
            status="completed",
            performed_at=datetime(2024, 3, 9, 10, 30, 0),
            notes=notes,
        ),
        athlete=a,
        event=event,
    )
