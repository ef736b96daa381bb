import copy
import os
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient  # noqa: E402

from auth import create_tokens, hash_password  # noqa: E402
from config import get_settings  # noqa: E402
from main import create_app  # noqa: E402

get_settings.cache_clear()

PRIMARY_KEYS = {"departments": "department_id", "issues": "id", "licenses": "id"}


# ─── IN-MEMORY SUPABASE ───────────────────────────────────
class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._columns = None
        self._payload = None
        self._filters = []
        self._order = None
        self._limit = None
        self._range = None

    def select(self, columns: str = "*"):
        self._op = "select"
        self._columns = None if columns.strip() == "*" else [c.strip() for c in columns.split(",")]
        return self

    def insert(self, payload):
        self._op = "insert"
        self._payload = payload
        return self

    def update(self, payload):
        self._op = "update"
        self._payload = payload
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self):
        rows = self._db.tables.setdefault(self._table, [])
        if self._op == "insert":
            payloads = self._payload if isinstance(self._payload, list) else [self._payload]
            return SimpleNamespace(data=[self._db.add(self._table, p) for p in payloads])
        if self._op == "update":
            hit = [r for r in rows if self._matches(r)]
            for r in hit:
                r.update(copy.deepcopy(self._payload))
            return SimpleNamespace(data=copy.deepcopy(hit))
        if self._op == "delete":
            hit = [r for r in rows if self._matches(r)]
            self._db.tables[self._table] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=copy.deepcopy(hit))

        hit = [r for r in rows if self._matches(r)]
        if self._order:
            column, desc = self._order
            hit = sorted(hit, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self._limit is not None:
            hit = hit[: self._limit]
        if self._range is not None:
            start, end = self._range
            hit = hit[start : end + 1]
        if self._db.max_rows is not None:
            hit = hit[: self._db.max_rows]
        if self._columns:
            hit = [{c: r.get(c) for c in self._columns} for r in hit]
        return SimpleNamespace(data=copy.deepcopy(hit))


class FakeBucket:
    def __init__(self, name: str, files: dict):
        self.name = name
        self.files = files

    def upload(self, path, data, options=None):
        self.files[path] = data

    def get_public_url(self, path):
        return f"https://storage.test/{self.name}/{path}"

    def remove(self, paths):
        for path in paths:
            self.files.pop(path, None)


class FakeStorage:
    def __init__(self):
        self.buckets = {}

    def from_(self, bucket):
        return FakeBucket(bucket, self.buckets.setdefault(bucket, {}))


class FakeSupabase:
    def __init__(self, max_rows=None):
        # mirrors PostgREST's max-rows cap on every select
        self.max_rows = max_rows
        self.tables = {"departments": [], "users": [], "issues": [], "licenses": []}
        self.storage = FakeStorage()
        self._ids = {}
        self._clock = datetime(2024, 1, 1, 9, 0, 0)

    def _tick(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def add(self, table: str, payload: dict) -> dict:
        row = copy.deepcopy(payload)
        pk = PRIMARY_KEYS.get(table)
        if pk and row.get(pk) is None:
            self._ids[table] = self._ids.get(table, 0) + 1
            row[pk] = self._ids[table]
        if table == "users":
            row.setdefault("department_id", None)
            row.setdefault("phone_number", None)
            row.setdefault("is_admin", False)
        if table in ("users", "licenses"):
            row.setdefault("created_at", self._tick())
        self.tables[table].append(row)
        return copy.deepcopy(row)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


# ─── FIXTURES ─────────────────────────────────────────────
@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def client(db):
    return TestClient(create_app(db_client=db))


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(to_email, subject, text):
        sent.append({"to": to_email, "subject": subject, "text": text})
        return True

    monkeypatch.setattr("issues.send_email", fake_send)
    return sent


def make_department(db, name="Electrical", dept_type="Maintenance"):
    return db.add("departments", {"name": name, "type": dept_type})


def make_user(db, username, department_id=None, is_admin=False, email=None, password="secret"):
    return db.add("users", {
        "id":            username,
        "full_name":     username.title(),
        "email":         email if email is not None else f"{username}@example.com",
        "password":      hash_password(password),
        "department_id": department_id,
        "is_admin":      is_admin,
    })


def auth_headers(user_row):
    access_token, _ = create_tokens(user_row)
    return {"Authorization": f"Bearer {access_token}"}


def make_issue(db, department_id, user_id, **overrides):
    row = {
        "issue":                 "Broken light",
        "description":           "Corridor light flickers",
        "address":               "Block A",
        "require_department_id": department_id,
        "user_id":               user_id,
        "complete":              False,
        "acknowledge_at":        None,
        "created_at":            "2024-03-05 14:07:09",
        "updated_at":            "2024-03-05 14:07:09",
    }
    row.update(overrides)
    return db.add("issues", row)
