from datetime import date

from feedesk.models.schemas import MONTHS

API = "/api/v1/fees"


def seed_office_student(fake_db, roll="CITY2025001", **fields):
    course = fake_db.add_course("Office Management", 3000)
    return fake_db.add_student(roll, "Asha Khan", course="Office Mgmt", **fields), course


def test_add_fee_derives_amount_from_course(client, fake_db):
    student, _ = seed_office_student(fake_db)

    response = client.post(f"{API}/", json={"student_id": student["id"], "month": "march", "year": 2025})

    assert response.status_code == 201
    body = response.json()
    assert body["amount"] == 3000
    assert body["month"] == "March"
    assert body["due_date"] == "2025-03-10"
    assert body["academic_year"] == "2025-2026"
    assert body["status"] == "pending"


def test_duplicate_month_is_rejected(client, fake_db):
    student, _ = seed_office_student(fake_db)
    payload = {"student_id": student["id"], "amount": 3000, "month": "March", "year": 2025}

    assert client.post(f"{API}/", json=payload).status_code == 201
    response = client.post(f"{API}/", json=payload)

    assert response.status_code == 409
    assert len(fake_db.tables["fee_records"]) == 1


def test_unresolved_course_without_amount_is_unprocessable(client, fake_db):
    student = fake_db.add_student("R100", "Dana", course="Underwater Basket Weaving")

    response = client.post(f"{API}/", json={"student_id": student["id"], "month": "March", "year": 2025})

    assert response.status_code == 422
    assert fake_db.tables["fee_records"] == []


def test_invalid_amount_and_month_are_rejected(client, fake_db):
    student, _ = seed_office_student(fake_db)

    assert client.post(f"{API}/", json={"student_id": student["id"], "amount": 0, "month": "March", "year": 2025}).status_code == 422
    assert client.post(f"{API}/", json={"student_id": student["id"], "amount": 10, "month": "Smarch", "year": 2025}).status_code == 422


def test_paid_entry_sets_payment_date_and_emails_admin(client, fake_db, email_service):
    student, _ = seed_office_student(fake_db)

    response = client.post(f"{API}/", json={
        "student_id": student["id"], "amount": 3000, "month": "April", "year": 2025, "status": "paid",
    })

    assert response.status_code == 201
    assert response.json()["payment_date"] == date.today().isoformat()
    assert len(email_service.sent) == 1
    assert "Payment Confirmed" in email_service.sent[0]["subject"]


def test_mark_paid_only_once(client, fake_db, email_service):
    student, _ = seed_office_student(fake_db)
    fee = fake_db.add_fee(student["id"], 3000, "March", 2025, date(2025, 3, 10))

    first = client.post(f"{API}/{fee['id']}/pay", json={"challan_number": "CH202503001"})
    second = client.post(f"{API}/{fee['id']}/pay", json={})

    assert first.status_code == 200
    assert first.json()["status"] == "paid"
    assert first.json()["challan_number"] == "CH202503001"
    assert second.status_code == 409
    assert len(email_service.sent) == 1
    assert client.post(f"{API}/missing/pay", json={}).status_code == 404


def test_bulk_payment_never_double_counts(client, fake_db, email_service):
    student, _ = seed_office_student(fake_db)
    march = fake_db.add_fee(student["id"], 3000, "March", 2025, date(2025, 3, 10))
    april = fake_db.add_fee(student["id"], 3000, "April", 2025, date(2025, 4, 10))
    items = [{"fee_id": march["id"]}, {"fee_id": april["id"]}, {"fee_id": "missing"}]

    first = client.post(f"{API}/bulk-payment", json={"items": items}).json()
    second = client.post(f"{API}/bulk-payment", json={"items": items}).json()

    assert (first["requested"], first["updated"], first["not_found"]) == (3, 2, 1)
    assert first["total_amount"] == 6000
    assert first["email_sent"] is True
    assert first["items"][0]["roll_number"] == "CITY2025001"

    assert (second["updated"], second["already_paid"], second["not_found"]) == (0, 2, 1)
    assert second["total_amount"] == 0
    assert second["email_sent"] is False
    assert len(email_service.sent) == 1
    assert all(f["status"] == "paid" for f in fake_db.tables["fee_records"])


def test_bulk_payment_requires_items(client):
    assert client.post(f"{API}/bulk-payment", json={"items": []}).status_code == 422


def test_paid_fee_cannot_be_deleted(client, fake_db):
    student, _ = seed_office_student(fake_db)
    paid = fake_db.add_fee(student["id"], 3000, "March", 2025, date(2025, 3, 10), status="paid")
    pending = fake_db.add_fee(student["id"], 3000, "April", 2025, date(2025, 4, 10))

    assert client.delete(f"{API}/{paid['id']}").status_code == 409
    assert client.delete(f"{API}/{pending['id']}").status_code == 204
    assert [f["id"] for f in fake_db.tables["fee_records"]] == [paid["id"]]


def test_list_fees_filters_by_status(client, fake_db):
    student, _ = seed_office_student(fake_db)
    fake_db.add_fee(student["id"], 3000, "March", 2025, date(2025, 3, 10), status="paid")
    fake_db.add_fee(student["id"], 3000, "April", 2025, date(2025, 4, 10))

    response = client.get(f"{API}/", params={"status": "pending"})

    assert response.status_code == 200
    assert [f["month"] for f in response.json()] == ["April"]


def test_challan_batch_skips_billed_and_unresolved_students(client, fake_db):
    billed, _ = seed_office_student(fake_db, roll="CITY2025001")
    fresh = fake_db.add_student("CITY2025002", "Bilal", course="Office Management")
    fake_db.add_student("CITY2025003", "Chen", course="Underwater Basket Weaving")
    fake_db.add_student("CITY2025004", "Gone", course="Office Management", deleted=True)
    fake_db.add_fee(billed["id"], 3000, "May", 2025, date(2025, 5, 10))

    result = client.post(f"{API}/challans/batch", json={"month": "may", "year": 2025}).json()

    assert (result["created"], result["skipped_existing"], result["skipped_unresolved"]) == (1, 1, 1)
    assert result["unresolved_students"] == ["CITY2025003"]
    assert result["total_amount"] == 3000
    [challan] = result["challans"]
    assert challan["challan_number"] == "CH202505002"
    assert challan["due_date"] == "2025-05-10"
    created = [f for f in fake_db.tables["fee_records"] if f["student_id"] == fresh["id"]]
    assert created[0]["challan_number"] == "CH202505002"

    again = client.post(f"{API}/challans/batch", json={"month": "May", "year": 2025}).json()
    assert (again["created"], again["skipped_existing"]) == (0, 2)


def test_challan_preview_reports_existing_challan(client, fake_db):
    student, _ = seed_office_student(fake_db)
    fake_db.add_fee(student["id"], 2800, "June", 2025, date(2025, 6, 10), challan_number="CH202506001")

    existing = client.get(f"{API}/challans/{student['id']}", params={"month": "June", "year": 2025}).json()
    fresh = client.get(f"{API}/challans/{student['id']}", params={"month": "July", "year": 2025}).json()

    assert existing["existing_challan_number"] == "CH202506001"
    assert existing["amount"] == 2800
    assert fresh["existing_challan_number"] is None
    assert fresh["amount"] == 3000
    assert fresh["challan_number"] == "CH202507001"
    assert fresh["course_resolution"]["status"] == "resolved"


def test_challan_preview_defaults_to_current_month(client, fake_db):
    student, _ = seed_office_student(fake_db)

    body = client.get(f"{API}/challans/{student['id']}").json()

    assert body["month"] == MONTHS[date.today().month - 1]
    assert body["year"] == date.today().year


def test_receipts_render_escaped_html_and_pdf(client, fake_db):
    student = fake_db.add_student("R200", "<script>alert(1)</script>", course="IELTS")
    fee = fake_db.add_fee(student["id"], 12500, "May", 2025, date(2025, 5, 10), status="paid",
                          payment_date="2025-05-12", challan_number="CH202505200")

    html = client.get(f"{API}/{fee['id']}/receipt")
    pdf = client.get(f"{API}/{fee['id']}/receipt.pdf")

    assert html.status_code == 200
    assert "&lt;script&gt;" in html.text
    assert "<script>" not in html.text
    assert "CH202505200" in html.text
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")


def test_fee_endpoints_require_admin(client):
    client.headers.pop("Authorization")

    assert client.get(f"{API}/").status_code in (401, 403)
