import asyncio
from datetime import date

import pytest

from feedesk.core.config import settings
from feedesk.models.schemas import ImportRowStatus, MatchStage
from feedesk.services.importer import ImportFileError, map_header, parse_csv, import_students

TODAY = date(2025, 5, 20)


def run(coro):
    return asyncio.run(coro)


def test_headers_are_mapped_by_keyword():
    assert map_header("Roll No") == "roll_number"
    assert map_header("Student Name") == "name"
    assert map_header("Course Name") == "course"
    assert map_header("Father's Name") == "father_name"
    assert map_header("Parent Contact") == "father_name"
    assert map_header("Telephone") == "phone"
    assert map_header("E-mail") == "email"
    assert map_header("Batch") == "class_time"
    assert map_header("Remarks") is None


def test_enrollment_date_column_is_not_taken_for_roll_number():
    assert map_header("Enrollment Date") is None

    rows = parse_csv(b"Enrollment Date,Roll No,Name\n2025-01-05,R001,Asha\n")

    assert (rows[0].roll_number, rows[0].name) == ("R001", "Asha")


def test_parse_csv_trims_values_and_skips_blank_lines():
    content = (
        "Roll No,Student Name,Course Name,Phone\n"
        " R001 , Asha Khan ,Office Mgmt, 0300111 \n"
        ",,,\n"
        "\n"
        "R002,Bilal,,\n"
    ).encode("utf-8")

    rows = parse_csv(content)

    assert [(r.line_number, r.roll_number, r.name) for r in rows] == [(2, "R001", "Asha Khan"), (5, "R002", "Bilal")]
    assert rows[0].course == "Office Mgmt"
    assert rows[0].phone == "0300111"
    assert rows[1].course is None


def test_parse_csv_requires_roll_and_name_columns():
    with pytest.raises(ImportFileError):
        parse_csv(b"Course,Phone\nIELTS,123\n")
    with pytest.raises(ImportFileError):
        parse_csv(b"")


def test_import_classifies_every_row(fake_db, repo):
    fake_db.add_course("Office Management", 3000)
    fake_db.add_student("R001", "Existing Student")
    rows = parse_csv((
        "roll_number,name,course\n"
        "R001,Asha,Office Management\n"
        "R002,Bilal,Office Mgmt\n"
        "R002,Bilal Again,Office Mgmt\n"
        "R003,,IELTS\n"
    ).encode("utf-8"))

    summary = run(import_students(repo, rows, TODAY))

    assert (summary.total, summary.success, summary.duplicates, summary.invalid, summary.failed) == (4, 1, 2, 1, 0)
    assert [r.status for r in summary.rows] == [
        ImportRowStatus.DUPLICATE, ImportRowStatus.SUCCESS, ImportRowStatus.DUPLICATE, ImportRowStatus.INVALID,
    ]
    assert sorted(s["roll_number"] for s in fake_db.tables["students"]) == ["R001", "R002"]

    [fee] = fake_db.tables["fee_records"]
    added = next(s for s in fake_db.tables["students"] if s["roll_number"] == "R002")
    assert fee["student_id"] == added["id"]
    assert fee["amount"] == 3000
    assert fee["month"] == "May"
    assert fee["due_date"] == "2025-05-20"
    assert fee["status"] == "pending"
    assert added["course"] == "Office Management"
    assert summary.rows[1].fee_amount == 3000


def test_duplicate_roll_writes_nothing(fake_db, repo):
    fake_db.add_student("R001", "Existing Student")

    summary = run(import_students(repo, parse_csv(b"roll,name\nR001,Someone Else\n"), TODAY))

    assert summary.duplicates == 1
    assert len(fake_db.tables["students"]) == 1
    assert fake_db.tables["fee_records"] == []


def test_unresolved_course_creates_no_fee_by_default(fake_db, repo, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_DEFAULT_MONTHLY_FEE", None)

    summary = run(import_students(repo, parse_csv(b"roll,name,course\nR010,Dana,Underwater Basket Weaving\n"), TODAY))

    [row] = summary.rows
    assert row.status == ImportRowStatus.SUCCESS
    assert row.fee_amount is None
    assert any("no fee record" in w for w in row.warnings)
    assert fake_db.tables["students"][0]["course"] == "Underwater Basket Weaving"
    assert fake_db.tables["fee_records"] == []


def test_configured_default_fee_is_applied_with_a_warning(fake_db, repo, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_DEFAULT_MONTHLY_FEE", 2500.0)

    summary = run(import_students(repo, parse_csv(b"roll,name,course\nR010,Dana,Underwater Basket Weaving\n"), TODAY))

    [row] = summary.rows
    assert row.fee_amount == 2500
    assert row.warnings
    assert fake_db.tables["fee_records"][0]["amount"] == 2500


def test_fee_table_prices_course_missing_from_catalog(fake_db, repo):
    summary = run(import_students(repo, parse_csv(b"roll,name,course\nR011,Eli,Amazon VA\n"), TODAY))

    assert summary.rows[0].fee_amount == 15000
    assert fake_db.tables["students"][0]["course_id"] is None


def test_excluded_course_keeps_raw_text(fake_db, repo, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_DEFAULT_MONTHLY_FEE", None)
    fake_db.add_course("Diploma in IT", 4500)

    summary = run(import_students(repo, parse_csv(b"roll,name,course\nR012,Fay,Diploma in IT\n"), TODAY))

    [row] = summary.rows
    assert row.course_resolution.stage == MatchStage.EXCLUDED
    assert fake_db.tables["students"][0]["course_id"] is None
    assert fake_db.tables["fee_records"] == []


def test_invalid_email_is_dropped_with_warning(fake_db, repo):
    summary = run(import_students(repo, parse_csv(b"roll,name,email\nR013,Gul,not-an-email\n"), TODAY))

    assert summary.success == 1
    assert summary.rows[0].warnings
    assert fake_db.tables["students"][0]["email"] is None


def test_store_rejection_is_reported_as_failed(fake_db, repo):
    fake_db.failures[("insert", "students")] = "connection reset"

    summary = run(import_students(repo, parse_csv(b"roll,name\nR014,Hana\n"), TODAY))

    assert summary.failed == 1
    assert summary.rows[0].status == ImportRowStatus.FAILED
    assert "connection reset" in summary.rows[0].errors[0]
