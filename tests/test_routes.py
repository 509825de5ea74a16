import csv
import json
from io import StringIO

from gymscore import db, services
from gymscore.schemas import AthleteCreate

from .conftest import login


def _new_competition(client, name="Spring Open"):
    r = client.post(
        "/competitions/new",
        data={"name": name, "location": "Ghent", "start_date": "2024-03-09", "end_date": "", "status": "active"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    return int(r.headers["location"].rsplit("/", 1)[1])


def _add_athlete(**fields):
    s = db.new_session()
    try:
        return services.create_athlete(s, AthleteCreate(**fields))
    finally:
        s.close()


def _female_event(code):
    s = db.new_session()
    try:
        return next(e for e in services.list_events(s, "female") if e.code == code)
    finally:
        s.close()


class TestAuth:
    def test_api_requires_login(self, client):
        assert client.get("/competitions").status_code == 401

    def test_browser_redirected_to_login(self, client):
        r = client.get("/competitions", headers={"accept": "text/html"}, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/login"

    def test_bad_password(self, client):
        r = login(client, password="nope")
        assert r.status_code == 401
        assert "Invalid email or password." in r.text

    def test_register_then_logout(self, client):
        r = client.post("/register", data={"email": "coach@club.be", "password": "secret1"})
        assert r.status_code == 200
        assert "coach@club.be" in r.text
        client.post("/logout")
        assert client.get("/competitions").status_code == 401

    def test_competitions_are_private(self, admin_client):
        cid = _new_competition(admin_client)
        admin_client.post("/register", data={"email": "other@club.be", "password": "secret1"})
        assert admin_client.get(f"/competitions/{cid}").status_code == 403
        assert admin_client.get(f"/api/competitions/{cid}/export.csv").status_code == 403


class TestCompetitionPages:
    def test_create_and_view_every_tab(self, admin_client):
        cid = _new_competition(admin_client)
        page = admin_client.get("/competitions")
        assert "Spring Open" in page.text
        for tab in ("athletes", "scoring", "judges", "leaderboard", "export"):
            r = admin_client.get(f"/competitions/{cid}", params={"tab": tab})
            assert r.status_code == 200, tab
        assert "No results yet" in admin_client.get(f"/competitions/{cid}", params={"tab": "leaderboard"}).text

    def test_invalid_form_rerendered(self, admin_client):
        r = admin_client.post(
            "/competitions/new",
            data={"name": "  ", "start_date": "2024-03-09", "status": "upcoming"},
        )
        assert r.status_code == 400
        assert "Competition name is required" in r.text

    def test_edit_and_delete(self, admin_client):
        cid = _new_competition(admin_client)
        r = admin_client.post(
            f"/competitions/{cid}/edit",
            data={"name": "Autumn Cup", "location": "", "start_date": "2024-10-01", "end_date": "", "status": "completed"},
        )
        assert "Autumn Cup" in r.text
        assert "delete" in admin_client.get(f"/competitions/{cid}/delete").text.lower()
        admin_client.post(f"/competitions/{cid}/delete")
        assert admin_client.get(f"/competitions/{cid}").status_code == 404


class TestScoringAndExport:
    def test_export_without_routines_is_refused(self, admin_client):
        cid = _new_competition(admin_client)
        r = admin_client.get(f"/api/competitions/{cid}/export.csv", params={"kind": "summary"})
        assert r.status_code == 400
        assert "No data to export" in r.json()["detail"]

    def test_unknown_export_kind(self, admin_client):
        cid = _new_competition(admin_client)
        assert admin_client.get(f"/api/competitions/{cid}/export.csv", params={"kind": "xml"}).status_code == 400

    def test_grid_score_then_summary_export(self, admin_client):
        cid = _new_competition(admin_client, name="Spring Open 2024")
        jane = _add_athlete(first_name="Jane", last_name="Smith", gender="female", level="Level 9")
        vt = _female_event("VT")

        r = admin_client.post(
            f"/competitions/{cid}/routines/grid",
            data={"athlete_id": jane.id, "event_id": vt.id, "difficulty": "6", "execution": "8.5", "deductions": "1.2", "gender": "female"},
            follow_redirects=False,
        )
        assert r.status_code == 303
        assert "error" not in r.headers["location"]

        board = admin_client.get(f"/competitions/{cid}", params={"tab": "leaderboard"})
        assert "Jane Smith" in board.text
        assert "13.300" in board.text

        r = admin_client.get(f"/api/competitions/{cid}/export.csv", params={"kind": "summary"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/csv")
        assert 'filename="Spring_Open_2024_summary_results.csv"' in r.headers["content-disposition"]
        rows = list(csv.DictReader(StringIO(r.text)))
        assert rows[0]["athlete_name"] == "Jane Smith"
        assert rows[0]["VT_score"] == "13.300"
        assert rows[0]["UB_score"] == ""

    def test_score_entry_error_reported(self, admin_client):
        cid = _new_competition(admin_client)
        max_ = _add_athlete(first_name="Max", last_name="Doe", gender="male")
        vt = _female_event("VT")
        r = admin_client.post(
            f"/competitions/{cid}/routines",
            data={"athlete_id": max_.id, "event_id": vt.id, "difficulty": "5", "execution": "8"},
        )
        assert r.status_code == 200
        assert "Vault is a female event" in r.text


class TestAthletes:
    def test_create_search_and_filter(self, admin_client):
        r = admin_client.post(
            "/athletes/new",
            data={"first_name": "Jane", "last_name": "Smith", "gender": "female", "club": "Elite Gym"},
        )
        assert r.status_code == 200
        _add_athlete(first_name="Max", last_name="Doe", gender="male", club="City")

        page = admin_client.get("/athletes", params={"search": "elite"})
        assert "Jane" in page.text and "Max" not in page.text
        page = admin_client.get("/athletes", params={"gender": "male"})
        assert "Max" in page.text and "Jane Smith" not in page.text
        assert "No athletes found" in admin_client.get("/athletes", params={"search": "zzz"}).text

    def test_invalid_age_group(self, admin_client):
        r = admin_client.post(
            "/athletes/new",
            data={"first_name": "Jane", "last_name": "Smith", "gender": "female", "age_group": "12 yrs"},
        )
        assert r.status_code == 400
        assert "Age group must be one of" in r.text

    def test_roster_csv(self, admin_client):
        _add_athlete(first_name="Jane", last_name="Smith", gender="female", age_group="12 years")
        r = admin_client.get("/api/athletes.csv")
        assert r.text.splitlines() == ["first_name,last_name,gender,age,club,level", "Jane,Smith,female,12 years,,"]


class TestImport:
    def test_preview_then_apply(self, admin_client):
        content = (
            "first_name,last_name,gender,age,club,level\n"
            "John,Doe,Male,14+ years,City,Level 10\n"
            "Jane,Smith,female,12 yrs,,\n"
            "Kim,Lee,female,,,\n"
        )
        r = admin_client.post("/athletes/import", files={"file": ("athletes.csv", content.encode("utf-8"), "text/csv")})
        assert r.status_code == 200
        assert "Row 3: Age must be one of" in r.text
        assert "2 athletes ready to import" in r.text

        payload = json.dumps([
            {"first_name": "John", "last_name": "Doe", "gender": "male", "age_group": "14+ years", "club": "City", "level": "Level 10"},
            {"first_name": "Kim", "last_name": "Lee", "gender": "female", "age_group": None, "club": None, "level": None},
        ])
        r = admin_client.post("/athletes/import/apply", data={"payload": payload})
        assert "2 athletes imported successfully" in r.text
        assert admin_client.get("/athletes").text.count("/edit") == 2

    def test_rejects_non_csv(self, admin_client):
        r = admin_client.post("/athletes/import", files={"file": ("athletes.xlsx", b"x", "application/octet-stream")})
        assert r.status_code == 400

    def test_template_download(self, admin_client):
        r = admin_client.get("/athletes/import/template.csv")
        assert r.text.startswith("first_name,last_name,gender,age,club,level")


class TestEventsAndJudges:
    def test_events_page_lists_seeded_apparatus(self, admin_client):
        r = admin_client.get("/events")
        assert "Pommel Horse" in r.text
        r = admin_client.post("/events/new", data={"name": "Vault", "code": "VT", "gender": "male"})
        assert r.status_code == 400

    def test_judge_lifecycle(self, admin_client):
        admin_client.post("/judges/new", data={"first_name": "Ada", "last_name": "Brown"})
        assert "Ada Brown" in admin_client.get("/judges").text
        s = db.new_session()
        try:
            judge_id = services.list_judges(s)[0].id
        finally:
            s.close()
        admin_client.post(f"/judges/{judge_id}/delete")
        assert "No judges registered." in admin_client.get("/judges").text


def _routine_ids(competition_id):
    s = db.new_session()
    try:
        return [r.routine.id for r in services.list_routines(s, competition_id)]
    finally:
        s.close()


class TestRoutineOwnership:
    def test_cannot_delete_routine_of_another_competition(self, admin_client):
        victim = _new_competition(admin_client, name="Victim")
        jane = _add_athlete(first_name="Jane", last_name="Smith", gender="female")
        admin_client.post(
            f"/competitions/{victim}/routines/grid",
            data={"athlete_id": jane.id, "event_id": _female_event("VT").id, "difficulty": "5", "execution": "8"},
        )
        [routine_id] = _routine_ids(victim)

        admin_client.post("/register", data={"email": "other@club.be", "password": "secret1"})
        mine = _new_competition(admin_client, name="Mine")
        r = admin_client.post(
            f"/competitions/{mine}/routines/{routine_id}/delete",
            data={"tab": "scoring"},
            follow_redirects=False,
        )
        assert r.status_code == 303
        assert "error=Routine+not+found" in r.headers["location"]
        assert _routine_ids(victim) == [routine_id]

    def test_owner_can_delete_own_routine(self, admin_client):
        cid = _new_competition(admin_client)
        jane = _add_athlete(first_name="Jane", last_name="Smith", gender="female")
        admin_client.post(
            f"/competitions/{cid}/routines/grid",
            data={"athlete_id": jane.id, "event_id": _female_event("VT").id, "difficulty": "5", "execution": "8"},
        )
        [routine_id] = _routine_ids(cid)
        admin_client.post(f"/competitions/{cid}/routines/{routine_id}/delete", data={"tab": "scoring"})
        assert _routine_ids(cid) == []


def _failing_write(*args, **kwargs):
    raise services.BackendError("Could not delete. Please try again.")


class TestDeleteFailures:
    def test_competition_delete_failure_rerenders_confirmation(self, admin_client, monkeypatch):
        cid = _new_competition(admin_client)
        monkeypatch.setattr(services, "delete_competition", _failing_write)
        r = admin_client.post(f"/competitions/{cid}/delete")
        assert r.status_code == 400
        assert "Could not delete. Please try again." in r.text
        assert "Delete competition" in r.text

    def test_event_delete_failure_rerenders_events(self, admin_client, monkeypatch):
        event_id = _female_event("BB").id
        monkeypatch.setattr(services, "delete_event", _failing_write)
        r = admin_client.post(f"/events/{event_id}/delete")
        assert r.status_code == 400
        assert "Could not delete. Please try again." in r.text
        assert "Balance Beam" in r.text

    def test_judge_delete_failure_rerenders_judges(self, admin_client, monkeypatch):
        admin_client.post("/judges/new", data={"first_name": "Ada", "last_name": "Brown"})
        s = db.new_session()
        try:
            judge_id = services.list_judges(s)[0].id
        finally:
            s.close()
        monkeypatch.setattr(services, "delete_judge", _failing_write)
        r = admin_client.post(f"/judges/{judge_id}/delete")
        assert r.status_code == 400
        assert "Could not delete. Please try again." in r.text
        assert "Ada Brown" in r.text

    def test_missing_event_and_judge_are_404(self, admin_client):
        assert admin_client.post("/events/999/delete").status_code == 404
        assert admin_client.post("/judges/999/delete").status_code == 404
