from datetime import date, timedelta

from feedesk.models.schemas import Defaulter
from feedesk.services.notifications import render_message


def seed_defaulters(fake_db):
    today = date.today()
    asha = fake_db.add_student("R001", "Asha", email="asha@citycollege.edu", course="IELTS")
    bilal = fake_db.add_student("R002", "Bilal", phone="0300111")
    paid_up = fake_db.add_student("R003", "Chen", email="chen@citycollege.edu")
    fake_db.add_fee(asha["id"], 1000, "March", 2025, today - timedelta(days=40))
    fake_db.add_fee(asha["id"], 500, "April", 2025, today - timedelta(days=5))
    fake_db.add_fee(bilal["id"], 3000, "April", 2025, today - timedelta(days=3))
    fake_db.add_fee(paid_up["id"], 3000, "April", 2025, today - timedelta(days=3), status="paid")
    return asha, bilal, paid_up


def test_render_message_fills_placeholders():
    defaulter = Defaulter(
        student_id="s1", roll_number="R001", name="Asha", course="IELTS",
        total_pending=1500, overdue_days=12,
    )

    message = render_message(
        "{student_name} ({roll_number}, {course}) owes {pending_amount}, {overdue_days} days late. {unknown}",
        defaulter,
    )

    assert message == "Asha (R001, IELTS) owes Rs. 1,500, 12 days late. {unknown}"


def test_render_message_tolerates_stray_braces():
    defaulter = Defaulter(student_id="s1", roll_number="R001", name="Asha", total_pending=1, overdue_days=0)

    assert render_message("Pay now {", defaulter) == "Pay now {"


def test_defaulter_list_with_summary(client, fake_db):
    seed_defaulters(fake_db)

    body = client.get("/api/v1/defaulters/").json()

    assert [d["roll_number"] for d in body["defaulters"]] == ["R002", "R001"]
    asha = body["defaulters"][1]
    assert asha["total_pending"] == 1500
    assert asha["overdue_days"] == 40
    assert body["summary"]["count"] == 2
    assert body["summary"]["total_pending"] == 4500
    assert body["summary"]["critical"] == 1
    assert body["summary"]["recent"] == 1
    assert body["summary"]["with_email"] == 1
    assert body["summary"]["with_phone"] == 1
    assert (asha["has_email"], asha["has_phone"]) == (True, False)
    assert (body["defaulters"][0]["has_email"], body["defaulters"][0]["has_phone"]) == (False, True)


def test_defaulter_search(client, fake_db):
    seed_defaulters(fake_db)

    body = client.get("/api/v1/defaulters/", params={"search": "ielts"}).json()

    assert [d["roll_number"] for d in body["defaulters"]] == ["R001"]
    assert body["summary"]["count"] == 1


def test_deleted_students_are_not_defaulters(client, fake_db):
    gone = fake_db.add_student("R009", "Gone", deleted=True)
    fake_db.add_fee(gone["id"], 1000, "April", 2025, date.today())

    assert client.get("/api/v1/defaulters/").json()["defaulters"] == []
    assert len(client.get("/api/v1/defaulters/", params={"include_deleted": True}).json()["defaulters"]) == 1


def test_remind_sends_and_logs(client, fake_db, email_service):
    asha, _, _ = seed_defaulters(fake_db)

    body = client.post(f"/api/v1/defaulters/{asha['id']}/remind", json={}).json()

    assert body["status"] == "sent"
    assert body["message_id"] == "test-1"
    [sent] = email_service.sent
    assert sent["to"] == "asha@citycollege.edu"
    assert "Rs. 1,500" in sent["html"]
    [log] = fake_db.tables["notification_logs"]
    assert log["student_id"] == asha["id"]
    assert log["status"] == "sent"
    assert log["message_id"] == "test-1"


def test_remind_without_email_fails_explicitly(client, fake_db, email_service):
    _, bilal, _ = seed_defaulters(fake_db)

    body = client.post(f"/api/v1/defaulters/{bilal['id']}/remind", json={}).json()

    assert body["status"] == "failed"
    assert body["error"] == "No email address"
    assert email_service.sent == []
    assert fake_db.tables["notification_logs"][0]["status"] == "failed"


def test_remind_student_without_pending_fees(client, fake_db):
    _, _, paid_up = seed_defaulters(fake_db)

    assert client.post(f"/api/v1/defaulters/{paid_up['id']}/remind", json={}).status_code == 400


def test_batch_send_reports_each_student(client, fake_db, email_service):
    asha, bilal, paid_up = seed_defaulters(fake_db)

    body = client.post("/api/v1/notifications/send", json={
        "student_ids": [asha["id"], bilal["id"], paid_up["id"], "missing", asha["id"]],
        "message": "Dear {student_name}, please pay {pending_amount}.",
    }).json()

    assert (body["requested"], body["sent"], body["failed"]) == (4, 1, 3)
    errors = {item["student_id"]: item["error"] for item in body["items"]}
    assert errors[bilal["id"]] == "No email address"
    assert errors[paid_up["id"]] == "No pending fees"
    assert errors["missing"] == "Student not found"
    assert "Dear Asha, please pay Rs. 1,500." in email_service.sent[0]["text"]

    logs = client.get("/api/v1/notifications/logs").json()
    assert sorted(log["status"] for log in logs) == ["failed", "sent"]


def test_batch_send_requires_students(client):
    assert client.post("/api/v1/notifications/send", json={"student_ids": []}).status_code == 422
