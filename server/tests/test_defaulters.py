from datetime import date

from feedesk.models.schemas import FeeRecord, StudentWithFees
from feedesk.services.defaulters import (
    aggregate_defaulters, overdue_days, search_defaulters, summarize_defaulters,
)

TODAY = date(2025, 5, 20)


def fee(fee_id, amount, due, status="pending"):
    return FeeRecord(
        id=fee_id, student_id="s", amount=amount, month="May", year=2025,
        due_date=due, status=status,
    )


def student(student_id, roll, name, fees, **fields):
    return StudentWithFees(id=student_id, roll_number=roll, name=name, fee_records=fees, **fields)


def test_pending_amounts_are_summed_and_overdue_uses_earliest_due_date():
    s = student("s1", "R001", "Asha", [
        fee("f1", 1000, date(2025, 5, 10)),
        fee("f2", 500, date(2025, 5, 17)),
    ])

    [defaulter] = aggregate_defaulters([s], TODAY)

    assert defaulter.total_pending == 1500
    assert defaulter.overdue_days == 10
    assert [f.id for f in defaulter.fee_records] == ["f1", "f2"]


def test_paid_records_are_ignored():
    s = student("s1", "R001", "Asha", [
        fee("f1", 1000, date(2025, 4, 10), status="paid"),
        fee("f2", 700, date(2025, 5, 10)),
    ])

    [defaulter] = aggregate_defaulters([s], TODAY)

    assert defaulter.total_pending == 700
    assert defaulter.overdue_days == 10


def test_students_without_pending_fees_are_not_defaulters():
    paid_up = student("s1", "R001", "Asha", [fee("f1", 1000, date(2025, 5, 10), status="paid")])
    no_records = student("s2", "R002", "Bilal", [])
    zero = student("s3", "R003", "Chen", [fee("f3", 0, date(2025, 5, 10))])

    assert aggregate_defaulters([paid_up, no_records, zero], TODAY) == []


def test_future_due_date_is_not_overdue():
    s = student("s1", "R001", "Asha", [fee("f1", 1000, date(2025, 6, 10))])

    [defaulter] = aggregate_defaulters([s], TODAY)

    assert defaulter.overdue_days == 0


def test_time_of_day_on_due_date_does_not_change_overdue_days():
    morning = FeeRecord.model_validate({
        "id": "f1", "student_id": "s1", "amount": 100, "month": "May", "year": 2025,
        "due_date": "2025-05-10T00:00:01+00:00",
    })
    night = FeeRecord.model_validate({
        "id": "f2", "student_id": "s2", "amount": 100, "month": "May", "year": 2025,
        "due_date": "2025-05-10T23:59:59+00:00",
    })

    assert overdue_days(morning.due_date, TODAY) == overdue_days(night.due_date, TODAY) == 10


def test_defaulters_are_ordered_by_pending_amount_then_roll_number():
    students = [
        student("s1", "R003", "Chen", [fee("a", 500, date(2025, 5, 10))]),
        student("s2", "R001", "Asha", [fee("b", 2000, date(2025, 5, 10))]),
        student("s3", "R002", "Bilal", [fee("c", 500, date(2025, 5, 10))]),
    ]

    defaulters = aggregate_defaulters(students, TODAY)

    assert [d.roll_number for d in defaulters] == ["R001", "R002", "R003"]


def test_summary_counts_critical_recent_and_contactable():
    students = [
        student("s1", "R001", "Asha", [fee("a", 1000, date(2025, 4, 1))], email="asha@example.com"),
        student("s2", "R002", "Bilal", [fee("b", 500, date(2025, 5, 15))], phone="0300-1234567"),
        student("s3", "R003", "Chen", [fee("c", 250, date(2025, 5, 1))]),
    ]

    summary = summarize_defaulters(aggregate_defaulters(students, TODAY))

    assert summary.count == 3
    assert summary.total_pending == 1750
    assert summary.critical == 1
    assert summary.recent == 1
    assert summary.with_email == 1
    assert summary.with_phone == 1


def test_missing_contact_details_are_none():
    s = student("s1", "R001", "Asha", [fee("a", 100, date(2025, 5, 10))], email="", phone="  ")

    [defaulter] = aggregate_defaulters([s], TODAY)

    assert defaulter.email is None
    assert defaulter.phone is None
    assert not defaulter.has_email


def test_search_matches_name_roll_course_and_phone():
    students = [
        student("s1", "R001", "Asha Khan", [fee("a", 100, date(2025, 5, 10))], course="IELTS", phone="0300111"),
        student("s2", "R002", "Bilal", [fee("b", 100, date(2025, 5, 10))], course="Graphic Design"),
    ]
    defaulters = aggregate_defaulters(students, TODAY)

    assert [d.roll_number for d in search_defaulters(defaulters, "khan")] == ["R001"]
    assert [d.roll_number for d in search_defaulters(defaulters, "r002")] == ["R002"]
    assert [d.roll_number for d in search_defaulters(defaulters, "graphic")] == ["R002"]
    assert [d.roll_number for d in search_defaulters(defaulters, "0300")] == ["R001"]
    assert len(search_defaulters(defaulters, "  ")) == 2
