import pytest

import issues
from issues import IssueState, issue_state
from tests.conftest import auth_headers, make_department, make_issue, make_user


@pytest.fixture
def electrical(db):
    return make_department(db, "Electrical", "Maintenance")


@pytest.fixture
def reporter(db):
    other = make_department(db, "Accounts", "Regular")
    return make_user(db, "reporter", department_id=other["department_id"])


@pytest.fixture
def frozen_time(monkeypatch):
    stamps = iter(["2024-06-01 10:00:00", "2024-06-02 11:30:00", "2024-06-03 12:45:00"])
    monkeypatch.setattr(issues, "give_time", lambda: next(stamps))


def _submit(client, user, **body):
    payload = {"issue": "Broken light", "description": "Flickers", "address": "Block A", "requireDepartment": "Electrical"}
    payload.update(body)
    return client.post("/api/v1/issue-form", json=payload, headers=auth_headers(user))


# ─── CREATE ───────────────────────────────────────────────
def test_create_issue_without_department_users_still_creates_with_warning(client, db, electrical, reporter, sent_emails):
    response = _submit(client, reporter)

    assert response.status_code == 200
    body = response.json()
    assert body["statusCode"] == 200
    assert body["data"]["warning"] is not None
    assert len(db.tables["issues"]) == 1
    row = db.tables["issues"][0]
    assert row["require_department_id"] == electrical["department_id"]
    assert row["user_id"] == "reporter"
    assert row["complete"] is False
    assert row["acknowledge_at"] is None
    assert sent_emails == []


def test_create_issue_unknown_department_is_not_found_and_inserts_nothing(client, db, reporter, sent_emails):
    response = _submit(client, reporter, requireDepartment="Plumbing")

    assert response.status_code == 404
    assert response.json()["message"] == "Required department not found"
    assert db.tables["issues"] == []


@pytest.mark.parametrize("field", ["issue", "address", "requireDepartment"])
def test_create_issue_rejects_blank_required_fields(client, db, electrical, reporter, field):
    response = _submit(client, reporter, **{field: "   "})

    assert response.status_code == 400
    assert response.json()["message"] == "All fields are required"
    assert db.tables["issues"] == []


def test_create_issue_emails_first_department_member(client, db, electrical, reporter, sent_emails):
    make_user(db, "tech1", department_id=electrical["department_id"], email="tech1@example.com")
    make_user(db, "tech2", department_id=electrical["department_id"], email="tech2@example.com")

    response = _submit(client, reporter)

    assert response.status_code == 200
    assert response.json()["data"]["warning"] is None
    assert [m["to"] for m in sent_emails] == ["tech1@example.com"]
    assert sent_emails[0]["subject"] == "New Issue Assigned"
    assert "Broken light" in sent_emails[0]["text"]


def test_create_issue_member_without_email_skips_notification(client, db, electrical, reporter, sent_emails):
    make_user(db, "tech1", department_id=electrical["department_id"], email="")

    response = _submit(client, reporter)

    assert response.status_code == 200
    assert response.json()["data"]["warning"] is None
    assert sent_emails == []


def test_created_at_uses_server_local_format(client, db, electrical, reporter, frozen_time, sent_emails):
    _submit(client, reporter)

    row = db.tables["issues"][0]
    assert row["created_at"] == "2024-06-01 10:00:00"


def test_create_issue_requires_authentication(client, electrical):
    response = client.post("/api/v1/issue-form", json={"issue": "x", "address": "y", "requireDepartment": "Electrical"})

    assert response.status_code == 401


# ─── STATE MACHINE ────────────────────────────────────────
def test_issue_state_derivation():
    assert issue_state({"complete": False, "acknowledge_at": None}) is IssueState.OPEN
    assert issue_state({"complete": False, "acknowledge_at": "2024-01-01 00:00:00"}) is IssueState.ACKNOWLEDGED
    assert issue_state({"complete": True, "acknowledge_at": None}) is IssueState.RESOLVED


def test_acknowledge_sets_timestamp_and_keeps_created_at(client, db, electrical, reporter, frozen_time):
    staff = make_user(db, "tech", department_id=electrical["department_id"])
    issue = make_issue(db, electrical["department_id"], reporter["id"])

    response = client.post("/api/v1/acknowledge-response", json={"issueId": issue["id"]}, headers=auth_headers(staff))

    assert response.status_code == 200
    row = db.tables["issues"][0]
    assert row["acknowledge_at"] == "2024-06-01 10:00:00"
    assert row["created_at"] == issue["created_at"]
    assert row["complete"] is False


def test_complete_sets_flag_and_updated_at(client, db, electrical, reporter, frozen_time):
    staff = make_user(db, "tech", department_id=electrical["department_id"])
    issue = make_issue(db, electrical["department_id"], reporter["id"], acknowledge_at="2024-05-01 08:00:00")

    response = client.post("/api/v1/complete-issue", json={"issueId": issue["id"]}, headers=auth_headers(staff))

    assert response.status_code == 200
    row = db.tables["issues"][0]
    assert row["complete"] is True
    assert row["updated_at"] == "2024-06-01 10:00:00"
    assert issue_state(row) is IssueState.RESOLVED


def test_complete_twice_conflicts(client, db, electrical, reporter):
    staff = make_user(db, "tech", department_id=electrical["department_id"])
    issue = make_issue(db, electrical["department_id"], reporter["id"], complete=True)

    response = client.post("/api/v1/complete-issue", json={"issueId": issue["id"]}, headers=auth_headers(staff))

    assert response.status_code == 409


def test_acknowledge_resolved_issue_conflicts_instead_of_reopening(client, db, electrical, reporter):
    staff = make_user(db, "tech", department_id=electrical["department_id"])
    issue = make_issue(db, electrical["department_id"], reporter["id"], complete=True)

    response = client.post("/api/v1/acknowledge-response", json={"issueId": issue["id"]}, headers=auth_headers(staff))

    assert response.status_code == 409
    assert db.tables["issues"][0]["complete"] is True


def test_reopen_moves_resolved_back_to_acknowledged(client, db, electrical, reporter, frozen_time):
    issue = make_issue(db, electrical["department_id"], reporter["id"], complete=True)

    response = client.post("/api/v1/reopen-issue", json={"issueId": issue["id"]}, headers=auth_headers(reporter))

    assert response.status_code == 200
    row = db.tables["issues"][0]
    assert row["complete"] is False
    assert row["acknowledge_at"] == "2024-06-01 10:00:00"
    assert row["updated_at"] == "2024-06-01 10:00:00"
    assert issue_state(row) is IssueState.ACKNOWLEDGED


def test_reopen_open_issue_conflicts(client, db, electrical, reporter):
    issue = make_issue(db, electrical["department_id"], reporter["id"])

    response = client.post("/api/v1/reopen-issue", json={"issueId": issue["id"]}, headers=auth_headers(reporter))

    assert response.status_code == 409


def test_transition_by_other_department_is_unauthorized(client, db, electrical, reporter):
    issue = make_issue(db, electrical["department_id"], reporter["id"])

    response = client.post("/api/v1/complete-issue", json={"issueId": issue["id"]}, headers=auth_headers(reporter))

    assert response.status_code == 401
    assert db.tables["issues"][0]["complete"] is False


def test_admin_can_complete_any_issue(client, db, electrical, reporter):
    admin = make_user(db, "boss", is_admin=True)
    issue = make_issue(db, electrical["department_id"], reporter["id"])

    response = client.post("/api/v1/complete-issue", json={"issueId": issue["id"]}, headers=auth_headers(admin))

    assert response.status_code == 200


def test_transition_unknown_issue_is_not_found(client, db, reporter):
    response = client.post("/api/v1/acknowledge-response", json={"issueId": 999}, headers=auth_headers(reporter))

    assert response.status_code == 404


# ─── LISTING ──────────────────────────────────────────────
def test_department_issues_hide_completed_by_default(client, db, electrical, reporter):
    staff = make_user(db, "tech", department_id=electrical["department_id"])
    make_issue(db, electrical["department_id"], reporter["id"])
    make_issue(db, electrical["department_id"], reporter["id"], complete=True)

    default = client.get("/api/v1/issues/department", headers=auth_headers(staff))
    everything = client.get("/api/v1/issues/department?include_completed=true", headers=auth_headers(staff))

    assert len(default.json()["data"]) == 1
    assert len(everything.json()["data"]) == 2


def test_department_issues_require_department_membership(client, db):
    admin = make_user(db, "boss", is_admin=True)

    response = client.get("/api/v1/issues/department", headers=auth_headers(admin))

    assert response.status_code == 401


def test_user_issues_only_returns_own_open_issues(client, db, electrical, reporter):
    someone = make_user(db, "someone")
    make_issue(db, electrical["department_id"], reporter["id"])
    make_issue(db, electrical["department_id"], someone["id"])

    response = client.get("/api/v1/issues/user", headers=auth_headers(reporter))

    rows = response.json()["data"]
    assert len(rows) == 1
    assert rows[0]["user_id"] == "reporter"


def test_admin_department_returns_callers_department(client, db, electrical):
    staff = make_user(db, "tech", department_id=electrical["department_id"])

    response = client.get("/api/v1/admin-department", headers=auth_headers(staff))

    assert response.json()["data"]["name"] == "Electrical"
