from __future__ import annotations

import json
import logging
from pathlib import Path
from urllib.parse import urlencode

from fastapi import FastAPI, Request, Depends, Form, HTTPException, UploadFile, File, Query
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .settings import settings, configure_logging
from .db import init_db, new_session, get_session
from . import services, importing
from .auth import (
    AuthCookieMiddleware,
    get_current_user,
    login_required,
    assert_can_access_competition,
    set_login_cookie,
    clear_login_cookie,
)
from .constants import AGE_GROUPS, COMPETITION_STATUSES, GENDERS, ROUTINE_STATUSES
from .exports import EXPORT_KINDS
from .schemas import (
    AthleteCreate,
    AthleteUpdate,
    CompetitionCreate,
    CompetitionUpdate,
    EventCreate,
    JudgeCreate,
    RoutineScoreInput,
    describe_error,
)
from .scoring import build_leaderboard, format_score

logger = logging.getLogger(__name__)

app = FastAPI(title="GymScore")
app.add_middleware(AuthCookieMiddleware)

_HERE = Path(__file__).resolve().parent
app.mount("/static", StaticFiles(directory=str(_HERE / "static")), name="static")
templates = Jinja2Templates(directory=str(_HERE / "templates"))
templates.env.globals["format_score"] = format_score

COMPETITION_TABS = ("athletes", "scoring", "judges", "leaderboard", "export")
COMPETITION_SECTIONS = ("active", "upcoming", "completed", "cancelled")
# errors a user can fix by correcting the form
FORM_ERRORS = (ValueError, services.BackendError)

@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()
    s = new_session()
    try:
        services.ensure_admin_user(s)
        if settings.GYM_SEED_EVENTS:
            services.ensure_default_events(s)
    finally:
        s.close()

@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    # browsers get sent to the login page instead of a bare 401
    if exc.status_code == 401 and "text/html" in request.headers.get("accept", ""):
        return RedirectResponse(url="/login", status_code=303)
    return await http_exception_handler(request, exc)

def render(request: Request, name: str, context: dict, status_code: int = 200) -> Response:
    context.setdefault("user", get_current_user(request))
    return templates.TemplateResponse(request, name, context, status_code=status_code)

def _load_competition(session, competition_id: int, user):
    competition = services.get_competition(session, competition_id)
    if not competition:
        raise HTTPException(status_code=404, detail="Competition not found")
    assert_can_access_competition(user, competition)
    return competition

@app.get("/", response_class=HTMLResponse)
def home(user=Depends(get_current_user)):
    return RedirectResponse(url="/competitions" if user else "/login", status_code=302)

# ---------------------------
# Auth
# ---------------------------

@app.get("/login", response_class=HTMLResponse)
def login_form(request: Request, user=Depends(get_current_user)):
    if user:
        return RedirectResponse(url="/competitions", status_code=302)
    return render(request, "login.html", {"error": None})

@app.post("/login")
def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    session=Depends(get_session),
):
    u = services.authenticate_user(session, email=email, password=password)
    if not u:
        return render(request, "login.html", {"error": "Invalid email or password."}, status_code=401)
    set_login_cookie(request, user_id=u.id, email=u.email)
    return RedirectResponse(url="/competitions", status_code=303)

@app.get("/register", response_class=HTMLResponse)
def register_form(request: Request):
    return render(request, "register.html", {"error": None})

@app.post("/register")
def register_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    session=Depends(get_session),
):
    try:
        u = services.create_user(session, email=email, password=password)
    except FORM_ERRORS as e:
        return render(request, "register.html", {"error": describe_error(e), "email": email}, status_code=400)
    set_login_cookie(request, user_id=u.id, email=u.email)
    return RedirectResponse(url="/competitions", status_code=303)

@app.post("/logout")
def logout(request: Request):
    clear_login_cookie(request)
    return RedirectResponse(url="/login", status_code=303)

# ---------------------------
# Competitions
# ---------------------------

def _competitions_context(session, user) -> dict:
    competitions = services.list_competitions(session, user.id)
    by_status = {status: [c for c in competitions if c.status == status] for status in COMPETITION_STATUSES}
    return {
        "competitions": competitions,
        "by_status": by_status,
        "sections": COMPETITION_SECTIONS,
        "statuses": COMPETITION_STATUSES,
        "athlete_count": len(services.list_athletes(session)),
    }

@app.get("/competitions", response_class=HTMLResponse)
def competitions_page(request: Request, user=Depends(login_required), session=Depends(get_session)):
    return render(request, "competitions.html", {**_competitions_context(session, user), "error": None, "form": {}})

@app.post("/competitions/new")
def competition_new_submit(
    request: Request,
    name: str = Form(...),
    location: str = Form(""),
    start_date: str = Form(...),
    end_date: str = Form(""),
    status: str = Form("upcoming"),
    user=Depends(login_required),
    session=Depends(get_session),
):
    form = {"name": name, "location": location, "start_date": start_date, "end_date": end_date, "status": status}
    try:
        payload = CompetitionCreate(**form)
        competition = services.create_competition(session, payload, user_id=user.id)
    except FORM_ERRORS as e:
        return render(
            request,
            "competitions.html",
            {**_competitions_context(session, user), "error": describe_error(e), "form": form},
            status_code=400,
        )
    return RedirectResponse(url=f"/competitions/{competition.id}", status_code=303)

@app.get("/competitions/{competition_id}", response_class=HTMLResponse)
def competition_detail_page(
    competition_id: int,
    request: Request,
    tab: str = Query(default="athletes"),
    gender: str = Query(default="female"),
    search: str = Query(default=""),
    athlete_gender: str = Query(default="all"),
    user=Depends(login_required),
    session=Depends(get_session),
):
    competition = _load_competition(session, competition_id, user)
    if tab not in COMPETITION_TABS:
        tab = "athletes"
    if gender not in GENDERS:
        gender = "female"
    routines = services.list_routines(session, competition_id)
    context = {
        "competition": competition,
        "tab": tab,
        "tabs": COMPETITION_TABS,
        "gender": gender,
        "search": search,
        "athlete_gender": athlete_gender,
        "routines": routines,
        "error": request.query_params.get("error"),
        "ok": request.query_params.get("ok"),
    }
    if tab == "athletes":
        context["athletes"] = services.filter_athletes(services.list_athletes(session), search, athlete_gender)
    elif tab == "scoring":
        context["athletes"] = services.list_athletes(session)
        context["events"] = services.list_events(session)
        context["judges"] = services.list_judges(session)
        context["routine_statuses"] = ROUTINE_STATUSES
    elif tab == "judges":
        context["athletes"] = services.filter_athletes(services.list_athletes(session), gender=gender)
        context["events"] = services.list_events(session, gender)
        context["cells"] = services.routines_by_cell(routines)
    elif tab == "leaderboard":
        context["leaderboard"] = build_leaderboard(routines)
    elif tab == "export":
        context["export_kinds"] = EXPORT_KINDS
    return render(request, "competition_detail.html", context)

@app.get("/competitions/{competition_id}/edit", response_class=HTMLResponse)
def competition_edit_form(competition_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    competition = _load_competition(session, competition_id, user)
    return render(request, "competition_edit.html", {"competition": competition, "statuses": COMPETITION_STATUSES, "error": None})

@app.post("/competitions/{competition_id}/edit")
def competition_edit_submit(
    competition_id: int,
    request: Request,
    name: str = Form(...),
    location: str = Form(""),
    start_date: str = Form(...),
    end_date: str = Form(""),
    status: str = Form(...),
    user=Depends(login_required),
    session=Depends(get_session),
):
    competition = _load_competition(session, competition_id, user)
    try:
        payload = CompetitionUpdate(name=name, location=location, start_date=start_date, end_date=end_date, status=status)
        services.update_competition(session, competition_id, payload)
    except FORM_ERRORS as e:
        return render(
            request,
            "competition_edit.html",
            {"competition": competition, "statuses": COMPETITION_STATUSES, "error": describe_error(e)},
            status_code=400,
        )
    return RedirectResponse(url=f"/competitions/{competition_id}", status_code=303)

def _competition_delete_context(competition, error=None) -> dict:
    return {
        "title": "Delete competition",
        "message": f'Are you sure you want to delete "{competition.name}"? This cannot be undone and '
                   "will also remove all of its scores and routines.",
        "action": f"/competitions/{competition.id}/delete",
        "cancel_url": f"/competitions/{competition.id}/edit",
        "error": error,
    }

@app.get("/competitions/{competition_id}/delete", response_class=HTMLResponse)
def competition_delete_confirm(competition_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    competition = _load_competition(session, competition_id, user)
    return render(request, "confirm_delete.html", _competition_delete_context(competition))

@app.post("/competitions/{competition_id}/delete")
def competition_delete_submit(
    competition_id: int,
    request: Request,
    user=Depends(login_required),
    session=Depends(get_session),
):
    competition = _load_competition(session, competition_id, user)
    try:
        services.delete_competition(session, competition_id)
    except FORM_ERRORS as e:
        return render(
            request,
            "confirm_delete.html",
            _competition_delete_context(competition, error=describe_error(e)),
            status_code=400,
        )
    return RedirectResponse(url="/competitions", status_code=303)

# ---------------------------
# Routines / scoring
# ---------------------------

def _tab_redirect(competition_id: int, tab: str, **params) -> RedirectResponse:
    query = urlencode({"tab": tab, **{k: v for k, v in params.items() if v}})
    return RedirectResponse(url=f"/competitions/{competition_id}?{query}", status_code=303)

@app.post("/competitions/{competition_id}/routines")
def routine_new_submit(
    competition_id: int,
    athlete_id: int = Form(...),
    event_id: int = Form(...),
    judge_id: str = Form(""),
    difficulty: str = Form(""),
    execution: str = Form(""),
    deductions: str = Form(""),
    status: str = Form("completed"),
    notes: str = Form(""),
    user=Depends(login_required),
    session=Depends(get_session),
):
    _load_competition(session, competition_id, user)
    try:
        services.create_routine(
            session,
            RoutineScoreInput(
                competition_id=competition_id,
                athlete_id=athlete_id,
                event_id=event_id,
                judge_id=judge_id,
                difficulty=difficulty,
                execution=execution,
                deductions=deductions,
                status=status,
                notes=notes,
            ),
        )
    except FORM_ERRORS as e:
        return _tab_redirect(competition_id, "scoring", error=describe_error(e))
    return _tab_redirect(competition_id, "scoring", ok="Score saved")

@app.post("/competitions/{competition_id}/routines/grid")
def routine_grid_submit(
    competition_id: int,
    athlete_id: int = Form(...),
    event_id: int = Form(...),
    difficulty: str = Form(""),
    execution: str = Form(""),
    deductions: str = Form(""),
    gender: str = Form("female"),
    user=Depends(login_required),
    session=Depends(get_session),
):
    _load_competition(session, competition_id, user)
    try:
        services.save_routine_score(
            session,
            RoutineScoreInput(
                competition_id=competition_id,
                athlete_id=athlete_id,
                event_id=event_id,
                difficulty=difficulty,
                execution=execution,
                deductions=deductions,
                status="completed",
            ),
        )
    except FORM_ERRORS as e:
        return _tab_redirect(competition_id, "judges", gender=gender, error=describe_error(e))
    return _tab_redirect(competition_id, "judges", gender=gender)

@app.post("/competitions/{competition_id}/routines/{routine_id}/delete")
def routine_delete_submit(
    competition_id: int,
    routine_id: int,
    tab: str = Form("scoring"),
    gender: str = Form(""),
    user=Depends(login_required),
    session=Depends(get_session),
):
    _load_competition(session, competition_id, user)
    try:
        services.delete_routine(session, routine_id, competition_id=competition_id)
    except FORM_ERRORS as e:
        return _tab_redirect(competition_id, tab, gender=gender, error=describe_error(e))
    return _tab_redirect(competition_id, tab, gender=gender)

# ---------------------------
# Athletes
# ---------------------------

def _athletes_context(session, search: str, gender: str) -> dict:
    athletes = services.list_athletes(session)
    return {
        "athletes": services.filter_athletes(athletes, search, gender),
        "search": search,
        "athlete_gender": gender,
        "male_count": sum(1 for a in athletes if a.gender == "male"),
        "female_count": sum(1 for a in athletes if a.gender == "female"),
        "total_count": len(athletes),
    }

@app.get("/athletes", response_class=HTMLResponse)
def athletes_page(
    request: Request,
    search: str = Query(default=""),
    gender: str = Query(default="all"),
    user=Depends(login_required),
    session=Depends(get_session),
):
    return render(request, "athletes.html", _athletes_context(session, search, gender))

def _athlete_form(request: Request, athlete=None, form=None, error=None, status_code=200) -> Response:
    return render(
        request,
        "athlete_form.html",
        {"athlete": athlete, "form": form or {}, "genders": GENDERS, "age_groups": AGE_GROUPS, "error": error},
        status_code=status_code,
    )

@app.get("/athletes/new", response_class=HTMLResponse)
def athlete_new_form(request: Request, user=Depends(login_required)):
    return _athlete_form(request)

@app.post("/athletes/new")
def athlete_new_submit(
    request: Request,
    first_name: str = Form(...),
    last_name: str = Form(...),
    gender: str = Form(...),
    age_group: str = Form(""),
    club: str = Form(""),
    level: str = Form(""),
    user=Depends(login_required),
    session=Depends(get_session),
):
    form = {"first_name": first_name, "last_name": last_name, "gender": gender, "age_group": age_group, "club": club, "level": level}
    try:
        services.create_athlete(session, AthleteCreate(**form))
    except FORM_ERRORS as e:
        return _athlete_form(request, form=form, error=describe_error(e), status_code=400)
    return RedirectResponse(url="/athletes", status_code=303)

@app.get("/athletes/{athlete_id}/edit", response_class=HTMLResponse)
def athlete_edit_form(athlete_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    athlete = services.get_athlete(session, athlete_id)
    if not athlete:
        raise HTTPException(status_code=404, detail="Athlete not found")
    form = {
        "first_name": athlete.first_name,
        "last_name": athlete.last_name,
        "gender": athlete.gender,
        "age_group": athlete.age_group or "",
        "club": athlete.club or "",
        "level": athlete.level or "",
    }
    return _athlete_form(request, athlete=athlete, form=form)

@app.post("/athletes/{athlete_id}/edit")
def athlete_edit_submit(
    athlete_id: int,
    request: Request,
    first_name: str = Form(...),
    last_name: str = Form(...),
    gender: str = Form(...),
    age_group: str = Form(""),
    club: str = Form(""),
    level: str = Form(""),
    user=Depends(login_required),
    session=Depends(get_session),
):
    athlete = services.get_athlete(session, athlete_id)
    if not athlete:
        raise HTTPException(status_code=404, detail="Athlete not found")
    form = {"first_name": first_name, "last_name": last_name, "gender": gender, "age_group": age_group, "club": club, "level": level}
    try:
        services.update_athlete(session, athlete_id, AthleteUpdate(**form))
    except FORM_ERRORS as e:
        return _athlete_form(request, athlete=athlete, form=form, error=describe_error(e), status_code=400)
    return RedirectResponse(url="/athletes", status_code=303)

@app.get("/athletes/{athlete_id}/delete", response_class=HTMLResponse)
def athlete_delete_confirm(athlete_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    athlete = services.get_athlete(session, athlete_id)
    if not athlete:
        raise HTTPException(status_code=404, detail="Athlete not found")
    return render(
        request,
        "confirm_delete.html",
        {
            "title": "Delete athlete",
            "message": f"Are you sure you want to delete {athlete.full_name}? This cannot be undone and "
                       "will also remove all associated scores and routines.",
            "action": f"/athletes/{athlete_id}/delete",
            "cancel_url": "/athletes",
        },
    )

@app.post("/athletes/{athlete_id}/delete")
def athlete_delete_submit(athlete_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    try:
        services.delete_athlete(session, athlete_id)
    except FORM_ERRORS as e:
        return render(
            request,
            "athletes.html",
            {**_athletes_context(session, "", "all"), "error": describe_error(e)},
            status_code=400,
        )
    return RedirectResponse(url="/athletes", status_code=303)

@app.get("/athletes/import", response_class=HTMLResponse)
def athletes_import_form(request: Request, user=Depends(login_required)):
    return render(request, "athletes_import.html", {"preview": None, "result": None, "error": None, "age_groups": AGE_GROUPS})

@app.get("/athletes/import/template.csv")
def athletes_import_template(user=Depends(login_required)):
    return Response(
        content=importing.template_csv(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="athletes_template.csv"'},
    )

@app.post("/athletes/import", response_class=HTMLResponse)
async def athletes_import_preview(request: Request, file: UploadFile = File(...), user=Depends(login_required)):
    context = {"preview": None, "result": None, "error": None, "age_groups": AGE_GROUPS}
    if file.filename and not file.filename.lower().endswith(".csv"):
        context["error"] = "Please select a valid CSV file"
        return render(request, "athletes_import.html", context, status_code=400)
    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError:
        context["error"] = "Error parsing CSV: file is not UTF-8 text"
        return render(request, "athletes_import.html", context, status_code=400)
    preview = importing.parse_athletes_csv(content)
    context["preview"] = preview
    context["payload"] = json.dumps([row.__dict__ for row in preview.valid])
    return render(request, "athletes_import.html", context)

@app.post("/athletes/import/apply", response_class=HTMLResponse)
def athletes_import_apply(
    request: Request,
    payload: str = Form(...),
    user=Depends(login_required),
    session=Depends(get_session),
):
    context = {"preview": None, "result": None, "error": None, "age_groups": AGE_GROUPS}
    try:
        raw_rows = json.loads(payload)
    except json.JSONDecodeError:
        context["error"] = "Import payload is corrupt; please upload the file again"
        return render(request, "athletes_import.html", context, status_code=400)
    # the payload came back from the browser, so validate it again
    preview = importing.validate_rows(
        {
            "first_name": r.get("first_name"),
            "last_name": r.get("last_name"),
            "gender": r.get("gender"),
            "age": r.get("age_group"),
            "club": r.get("club"),
            "level": r.get("level"),
        }
        for r in raw_rows
        if isinstance(r, dict)
    )
    context["result"] = importing.import_athletes(session, preview.valid)
    return render(request, "athletes_import.html", context)

# ---------------------------
# Events / judges
# ---------------------------

@app.get("/events", response_class=HTMLResponse)
def events_page(request: Request, user=Depends(login_required), session=Depends(get_session)):
    return render(request, "events.html", {"events": services.list_events(session), "genders": GENDERS, "error": None})

@app.post("/events/new")
def event_new_submit(
    request: Request,
    name: str = Form(...),
    code: str = Form(...),
    gender: str = Form(...),
    display_order: int = Form(0),
    max_score: float = Form(20.0),
    user=Depends(login_required),
    session=Depends(get_session),
):
    try:
        services.create_event(
            session,
            EventCreate(name=name, code=code, gender=gender, display_order=display_order, max_score=max_score),
        )
    except FORM_ERRORS as e:
        return render(
            request,
            "events.html",
            {"events": services.list_events(session), "genders": GENDERS, "error": describe_error(e)},
            status_code=400,
        )
    return RedirectResponse(url="/events", status_code=303)

@app.post("/events/{event_id}/delete")
def event_delete_submit(event_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    if not services.get_event(session, event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    try:
        services.delete_event(session, event_id)
    except FORM_ERRORS as e:
        return render(
            request,
            "events.html",
            {"events": services.list_events(session), "genders": GENDERS, "error": describe_error(e)},
            status_code=400,
        )
    return RedirectResponse(url="/events", status_code=303)

@app.get("/judges", response_class=HTMLResponse)
def judges_page(request: Request, user=Depends(login_required), session=Depends(get_session)):
    return render(request, "judges.html", {"judges": services.list_judges(session), "error": None})

@app.post("/judges/new")
def judge_new_submit(
    request: Request,
    first_name: str = Form(...),
    last_name: str = Form(...),
    certification_level: str = Form(""),
    user=Depends(login_required),
    session=Depends(get_session),
):
    try:
        services.create_judge(
            session,
            JudgeCreate(first_name=first_name, last_name=last_name, certification_level=certification_level),
        )
    except FORM_ERRORS as e:
        return render(
            request,
            "judges.html",
            {"judges": services.list_judges(session), "error": describe_error(e)},
            status_code=400,
        )
    return RedirectResponse(url="/judges", status_code=303)

@app.post("/judges/{judge_id}/delete")
def judge_delete_submit(judge_id: int, request: Request, user=Depends(login_required), session=Depends(get_session)):
    if not any(j.id == judge_id for j in services.list_judges(session)):
        raise HTTPException(status_code=404, detail="Judge not found")
    try:
        services.delete_judge(session, judge_id)
    except FORM_ERRORS as e:
        return render(
            request,
            "judges.html",
            {"judges": services.list_judges(session), "error": describe_error(e)},
            status_code=400,
        )
    return RedirectResponse(url="/judges", status_code=303)

from .csv_export import router as csv_router
app.include_router(csv_router, prefix="/api", tags=["csv"])
