import copy
import os
import uuid
from datetime import date, datetime, timezone

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-fee-desk")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ["SENDGRID_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from feedesk.core.config import settings
from feedesk.core.dependencies import get_email_service, get_repository
from feedesk.core.security import create_access_token, hash_password
from feedesk.db.repository import FeeRepository
from feedesk.db.supabase import SupabaseQueries
from feedesk.main import app
from feedesk.models.schemas import EmailResult
from feedesk.services.email_service import EmailService

ADMIN_EMAIL = "office@citycollege.edu"
ADMIN_PASSWORD = "correct horse"

# table -> column tuples that must be unique
UNIQUE_KEYS = {
    "students": [("roll_number",)],
    "fee_records": [("student_id", "month", "year")],
}


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Just enough of the PostgREST query builder for SupabaseQueries."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.payload = None
        self.predicates = []
        self.order_by = None
        self.desc = False
        self.max_rows = None
        self.want_count = False

    def select(self, columns="*", count=None):
        self.columns = columns
        self.want_count = count is not None
        return self

    def insert(self, data):
        self.op, self.payload = "insert", data
        return self

    def update(self, data):
        self.op, self.payload = "update", data
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.predicates.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.predicates.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column, value):
        self.predicates.append(lambda row: row.get(column) is not None and str(row[column]) >= str(value))
        return self

    def lte(self, column, value):
        self.predicates.append(lambda row: row.get(column) is not None and str(row[column]) <= str(value))
        return self

    def order(self, column, desc=False):
        self.order_by, self.desc = column, desc
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def _matching(self):
        return [row for row in self.db.tables[self.table] if all(p(row) for p in self.predicates)]

    def execute(self):
        failure = self.db.failures.get((self.op, self.table))
        if failure:
            raise APIError({"code": "XX000", "message": failure, "details": None, "hint": None})
        return getattr(self, f"_{self.op}")()

    def _select(self):
        rows = self._matching()
        if self.order_by:
            present = [r for r in rows if r.get(self.order_by) is not None]
            missing = [r for r in rows if r.get(self.order_by) is None]
            present.sort(key=lambda r: r[self.order_by], reverse=self.desc)
            rows = present + missing
        total = len(rows)
        if self.max_rows is not None:
            rows = rows[:self.max_rows]
        return FakeResponse([self.db.embed(self.table, row, self.columns) for row in rows],
                            count=total if self.want_count else None)

    def _insert(self):
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        rows = [self.db.new_row(self.table, item) for item in items]
        for index, row in enumerate(rows):
            self.db.check_unique(self.table, row, rows[:index])
        self.db.tables[self.table].extend(rows)
        return FakeResponse([copy.deepcopy(r) for r in rows])

    def _update(self):
        rows = self._matching()
        for row in rows:
            candidate = {**row, **self.payload}
            self.db.check_unique(self.table, candidate, [], ignore=row)
        for row in rows:
            row.update(self.payload)
        return FakeResponse([copy.deepcopy(r) for r in rows])

    def _delete(self):
        rows = self._matching()
        self.db.tables[self.table] = [r for r in self.db.tables[self.table] if r not in rows]
        return FakeResponse([copy.deepcopy(r) for r in rows])


class FakeSupabase:
    """In-memory stand-in for the Supabase client."""

    def __init__(self):
        self.tables = {"courses": [], "students": [], "fee_records": [], "notification_logs": []}
        self.failures = {}

    def table(self, name):
        return FakeQuery(self, name)

    def new_row(self, table, data):
        row = {"id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc).isoformat()}
        if table == "students":
            row["deleted"] = False
        row.update(copy.deepcopy(data))
        return row

    def check_unique(self, table, row, pending, ignore=None):
        for key in UNIQUE_KEYS.get(table, []):
            value = tuple(row.get(column) for column in key)
            for other in self.tables[table] + pending:
                if other is ignore:
                    continue
                if tuple(other.get(column) for column in key) == value:
                    raise APIError({
                        "code": "23505",
                        "message": f"duplicate key value violates unique constraint on {table}",
                        "details": None,
                        "hint": None,
                    })

    def embed(self, table, row, columns):
        row = copy.deepcopy(row)
        if table == "students" and "fee_records(*)" in columns:
            row["fee_records"] = [copy.deepcopy(f) for f in self.tables["fee_records"] if f["student_id"] == row["id"]]
        if table == "students" and "courses(*)" in columns:
            row["courses"] = next(
                (copy.deepcopy(c) for c in self.tables["courses"] if c["id"] == row.get("course_id")), None
            )
        if table == "fee_records" and "students(*)" in columns:
            row["students"] = next(
                (copy.deepcopy(s) for s in self.tables["students"] if s["id"] == row["student_id"]), None
            )
        return row

    # seeding helpers

    def add_course(self, name, monthly_fee, duration_months=1, category="general"):
        row = self.new_row("courses", {
            "name": name, "monthly_fee": monthly_fee,
            "duration_months": duration_months, "category": category,
        })
        self.tables["courses"].append(row)
        return row

    def add_student(self, roll_number, name, **fields):
        row = self.new_row("students", {"roll_number": roll_number, "name": name, **fields})
        self.tables["students"].append(row)
        return row

    def add_fee(self, student_id, amount, month, year, due_date, status="pending", **fields):
        due = due_date.isoformat() if isinstance(due_date, date) else due_date
        row = self.new_row("fee_records", {
            "student_id": student_id, "amount": amount, "month": month, "year": year,
            "academic_year": f"{year}-{year + 1}", "due_date": due, "status": status, **fields,
        })
        self.tables["fee_records"].append(row)
        return row


class RecordingEmailService(EmailService):
    """EmailService that records messages instead of sending them."""

    def __init__(self):
        super().__init__()
        self.sent = []

    async def send_email(self, to_email, subject, html_content, text_content=None):
        self.sent.append({"to": to_email, "subject": subject, "html": html_content, "text": text_content})
        return EmailResult(success=True, message_id=f"test-{len(self.sent)}")


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def repo(fake_db):
    return FeeRepository(SupabaseQueries(client=fake_db))


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def admin_accounts(monkeypatch):
    accounts = {ADMIN_EMAIL: hash_password(ADMIN_PASSWORD)}
    monkeypatch.setattr(settings, "ADMIN_ACCOUNTS", accounts)
    return accounts


@pytest.fixture
def client(repo, email_service, admin_accounts):
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_email_service] = lambda: email_service
    test_client = TestClient(app)
    test_client.headers.update({"Authorization": f"Bearer {create_access_token(ADMIN_EMAIL)}"})
    yield test_client
    app.dependency_overrides.clear()
