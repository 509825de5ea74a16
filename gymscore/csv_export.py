from __future__ import annotations

import csv
import logging
from io import StringIO

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import Response
from sqlalchemy.orm import Session

from .db import get_session
from . import services
from .auth import login_required, assert_can_access_competition
from .exports import EXPORT_KINDS, NoResultsToExport, build_export, export_filename, to_csv

logger = logging.getLogger(__name__)

router = APIRouter()

def _csv_response(filename: str, text: str) -> Response:
    return Response(
        content=text.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@router.get("/competitions/{competition_id}/export.csv")
def competition_export_csv(
    competition_id: int,
    kind: str = Query(default="detailed"),
    group: str = Query(default="gender"),
    user=Depends(login_required),
    session: Session = Depends(get_session),
):
    if kind not in EXPORT_KINDS:
        raise HTTPException(status_code=400, detail=f"Unknown export type: {kind}")
    competition = services.get_competition(session, competition_id)
    if not competition:
        raise HTTPException(status_code=404, detail="Competition not found")
    assert_can_access_competition(user, competition)

    routines = services.list_routines(session, competition_id)
    try:
        rows = build_export(
            kind,
            competition,
            routines,
            events=services.list_events(session),
            by_division=(group == "division"),
        )
        text = to_csv(rows)
    except NoResultsToExport as e:
        logger.info("export of competition %s refused: %s", competition_id, e)
        raise HTTPException(status_code=400, detail=str(e))
    return _csv_response(export_filename(competition.name, kind), text)

@router.get("/athletes.csv")
def athletes_csv(user=Depends(login_required), session: Session = Depends(get_session)):
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(["first_name", "last_name", "gender", "age", "club", "level"])
    for a in services.list_athletes(session):
        w.writerow([a.first_name, a.last_name, a.gender, a.age_group or "", a.club or "", a.level or ""])
    return _csv_response("athletes.csv", buf.getvalue())
