import pytest
from conftest import add_member, create_job, enable_automations

from fieldops.models_automation import Automation
from fieldops.models_invoice import Invoice


@pytest.fixture
def new_job(client, owner, customer_client):
    def create(**overrides):
        payload = {
            "clientId": customer_client.id,
            "title": "Spring cleanup",
            "lineItems": [{"description": "Mowing", "quantity": 2, "unitPrice": 50}],
        }
        payload.update(overrides)
        response = client.post("/jobs", json=payload, headers=owner.headers)
        assert response.status_code == 201, response.text
        return response.json()

    return create


def move(client, headers, job_id, *statuses):
    response = None
    for status in statuses:
        response = client.post(f"/jobs/{job_id}/status", json={"status": status}, headers=headers)
        assert response.status_code == 200, response.text
    return response.json()


class TestJobCrud:
    def test_create_job_uses_default_tax_rate(self, new_job):
        job = new_job()

        assert job["jobNumber"] == "JOB-00001"
        assert job["status"] == "draft"
        assert job["taxRate"] == 0.08
        assert job["subtotal"] == 100.0
        assert job["taxAmount"] == 8.0
        assert job["totalAmount"] == 108.0
        assert job["paymentStatus"] == "unpaid"
        assert job["allowedTransitions"] == ["quote", "scheduled", "cancelled"]
        assert job["clientName"] == "Jane Doe"

    def test_job_numbers_increment(self, new_job):
        new_job()
        assert new_job()["jobNumber"] == "JOB-00002"

    def test_unknown_client(self, client, owner):
        response = client.post("/jobs", json={"clientId": 999, "title": "Nope"}, headers=owner.headers)
        assert response.status_code == 404

    def test_assignee_must_be_member(self, client, owner, customer_client):
        response = client.post(
            "/jobs",
            json={"clientId": customer_client.id, "title": "Nope", "assignedTo": 999},
            headers=owner.headers,
        )
        assert response.status_code == 400

    def test_jobs_cannot_start_completed(self, client, owner, customer_client):
        response = client.post(
            "/jobs",
            json={"clientId": customer_client.id, "title": "Nope", "status": "completed"},
            headers=owner.headers,
        )
        assert response.status_code == 422

    def test_tax_rate_update_recalculates(self, client, owner, new_job):
        job = new_job()
        updated = client.put(f"/jobs/{job['id']}", json={"taxRate": 0.1}, headers=owner.headers).json()
        assert updated["taxAmount"] == 10.0
        assert updated["totalAmount"] == 110.0

    def test_only_early_jobs_can_be_deleted(self, client, owner, new_job):
        draft = new_job()
        scheduled = new_job(status="scheduled")

        assert client.delete(f"/jobs/{draft['id']}", headers=owner.headers).status_code == 200
        assert client.get(f"/jobs/{draft['id']}", headers=owner.headers).status_code == 404
        assert client.delete(f"/jobs/{scheduled['id']}", headers=owner.headers).status_code == 409

    def test_jobs_are_scoped_to_account(self, client, db, new_job, other_account):
        outsider = add_member(db, other_account, "OWNER", "outsider")
        job = new_job()
        assert client.get(f"/jobs/{job['id']}", headers=outsider.headers).status_code == 404


class TestLineItemsAndPayments:
    def test_line_items_update_totals(self, client, owner, new_job):
        job = new_job()

        added = client.post(
            f"/jobs/{job['id']}/line-items",
            json={"description": "Mulch", "quantity": 3, "unitPrice": 10, "itemType": "material"},
            headers=owner.headers,
        )
        assert added.status_code == 201
        assert added.json()["subtotal"] == 130.0

        item_id = added.json()["lineItems"][0]["id"]
        removed = client.delete(f"/jobs/{job['id']}/line-items/{item_id}", headers=owner.headers).json()
        assert removed["subtotal"] == 30.0
        assert removed["totalAmount"] == 32.4

    def test_cancelled_jobs_are_locked(self, client, owner, new_job):
        job = new_job()
        move(client, owner.headers, job["id"], "cancelled")

        response = client.post(
            f"/jobs/{job['id']}/line-items", json={"description": "Extra"}, headers=owner.headers
        )
        assert response.status_code == 400

        payment = client.post(f"/jobs/{job['id']}/payments", json={"amount": 10}, headers=owner.headers)
        assert payment.status_code == 400

    def test_payments_drive_payment_status(self, client, owner, new_job):
        job = new_job()

        partial = client.post(f"/jobs/{job['id']}/payments", json={"amount": 50}, headers=owner.headers)
        assert partial.status_code == 201
        assert partial.json()["paymentStatus"] == "partial"
        assert partial.json()["amountPaid"] == 50.0

        paid = client.post(
            f"/jobs/{job['id']}/payments", json={"amount": 58, "method": "check"}, headers=owner.headers
        ).json()
        assert paid["paymentStatus"] == "paid"
        assert paid["nextAction"] is not None

        payment_id = paid["payments"][0]["id"]
        reverted = client.delete(f"/jobs/{job['id']}/payments/{payment_id}", headers=owner.headers).json()
        assert reverted["paymentStatus"] == "partial"
        assert reverted["amountPaid"] == 58.0

    @pytest.mark.parametrize("payload", [{"amount": 0}, {"amount": -5}, {"amount": 10, "method": "barter"}])
    def test_invalid_payments(self, client, owner, new_job, payload):
        job = new_job()
        assert client.post(f"/jobs/{job['id']}/payments", json=payload, headers=owner.headers).status_code == 422


class TestStatusFlow:
    def test_invalid_transition(self, client, owner, new_job):
        job = new_job()
        response = client.post(f"/jobs/{job['id']}/status", json={"status": "completed"}, headers=owner.headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid status transition from draft to completed"

    def test_unknown_status(self, client, owner, new_job):
        job = new_job()
        response = client.post(f"/jobs/{job['id']}/status", json={"status": "archived"}, headers=owner.headers)
        assert response.status_code == 422

    def test_completion_marks_ready_and_schedules_automations(self, client, db, account, owner, new_job):
        enable_automations(db, account)
        job = new_job()

        body = move(client, owner.headers, job["id"], "scheduled", "in_progress", "completed")

        assert body["job"]["status"] == "completed"
        assert body["job"]["readyForInvoice"] is True
        assert body["job"]["completedAt"] is not None
        assert body["scheduledAutomations"] == 2
        assert body["automation"]["success"] is True
        assert body["invoiceId"] is None
        types = sorted(a.type for a in db.query(Automation).filter(Automation.related_id == job["id"]))
        assert types == ["job_closeout", "review_request"]

    def test_completion_without_automations(self, client, owner, new_job):
        job = new_job()
        body = move(client, owner.headers, job["id"], "scheduled", "in_progress", "completed")
        assert body["scheduledAutomations"] == 0

    def test_completion_auto_invoices(self, client, owner, new_job):
        client.put("/settings/business", json={"autoInvoiceOnCompletion": True}, headers=owner.headers)
        job = new_job()

        body = move(client, owner.headers, job["id"], "scheduled", "in_progress", "completed")

        assert body["job"]["status"] == "invoiced"
        assert body["invoiceId"] is not None

    def test_manual_invoicing_creates_invoice(self, client, db, owner, new_job):
        job = new_job()
        move(client, owner.headers, job["id"], "scheduled", "in_progress", "completed")

        body = move(client, owner.headers, job["id"], "invoiced")

        assert body["job"]["status"] == "invoiced"
        invoice = db.get(Invoice, body["invoiceId"])
        assert invoice.job_id == job["id"]
        assert invoice.total_amount == 108.0
        assert body["job"]["allowedTransitions"] == []

    def test_manual_invoicing_keeps_reason(self, client, owner, new_job):
        job = new_job()
        move(client, owner.headers, job["id"], "scheduled", "in_progress", "completed")

        response = client.post(
            f"/jobs/{job['id']}/status", json={"status": "invoiced", "reason": "Billing at month end"}, headers=owner.headers
        )
        assert response.status_code == 200

        notes = client.get(f"/jobs/{job['id']}/notes", headers=owner.headers).json()
        invoiced = [n["note"] for n in notes if "to invoiced" in n["note"]]
        assert len(invoiced) == 1
        assert "Billing at month end" in invoiced[0]
        assert "INV-0001" in invoiced[0]

    def test_status_change_writes_timeline(self, client, owner, new_job):
        job = new_job()
        client.post(
            f"/jobs/{job['id']}/status", json={"status": "scheduled", "reason": "Customer confirmed"}, headers=owner.headers
        )

        notes = client.get(f"/jobs/{job['id']}/notes", headers=owner.headers).json()
        assert notes[0]["noteType"] == "status_change"
        assert "Customer confirmed" in notes[0]["note"]

        timeline = client.get(f"/jobs/{job['id']}/timeline", headers=owner.headers).json()
        assert {entry["type"] for entry in timeline} >= {"status_change", "job_created", "job_scheduled"}

    def test_convert_quote(self, client, owner, new_job):
        job = new_job(status="quote")

        converted = client.post(
            f"/jobs/{job['id']}/convert",
            json={"serviceDate": "2030-05-01T09:00:00Z", "scheduledTime": "09:00"},
            headers=owner.headers,
        )

        assert converted.status_code == 200
        assert converted.json()["status"] == "scheduled"
        assert converted.json()["serviceDate"] == "2030-05-01T09:00:00"

    def test_convert_requires_quote(self, client, owner, new_job):
        job = new_job()
        assert client.post(f"/jobs/{job['id']}/convert", json={}, headers=owner.headers).status_code == 400

    def test_suggestions(self, client, owner, new_job):
        job = new_job(status="quote")
        body = client.get(f"/jobs/{job['id']}/suggestions", headers=owner.headers).json()
        assert body == {"suggestions": ["Convert this quote to a scheduled job"]}


class TestTechnicians:
    def test_techs_only_see_assigned_jobs(self, client, db, account, customer_client, tech):
        mine = create_job(db, account, customer_client, status="scheduled", assigned_to=tech.user.id)
        create_job(db, account, customer_client, status="scheduled")

        listed = client.get("/jobs", headers=tech.headers).json()
        assert [j["id"] for j in listed] == [mine.id]
        assert [j["id"] for j in client.get("/tech/jobs", headers=tech.headers).json()] == [mine.id]

    def test_techs_cannot_open_other_jobs(self, client, db, account, customer_client, tech):
        other = create_job(db, account, customer_client, status="scheduled")
        assert client.get(f"/tech/jobs/{other.id}", headers=tech.headers).status_code == 403
        response = client.post(f"/tech/jobs/{other.id}/status", json={"status": "in_progress"}, headers=tech.headers)
        assert response.status_code == 403

    def test_techs_work_their_jobs(self, client, db, account, customer_client, tech):
        job = create_job(db, account, customer_client, status="scheduled", assigned_to=tech.user.id)

        started = client.post(f"/tech/jobs/{job.id}/status", json={"status": "in_progress"}, headers=tech.headers)
        assert started.status_code == 200
        done = client.post(f"/tech/jobs/{job.id}/status", json={"status": "completed"}, headers=tech.headers)
        assert done.json()["job"]["status"] == "completed"

    def test_techs_cannot_cancel(self, client, db, account, customer_client, tech):
        job = create_job(db, account, customer_client, status="scheduled", assigned_to=tech.user.id)
        response = client.post(f"/jobs/{job.id}/status", json={"status": "cancelled"}, headers=tech.headers)
        assert response.status_code == 403

    def test_techs_add_notes(self, client, db, account, customer_client, tech):
        job = create_job(db, account, customer_client, status="in_progress", assigned_to=tech.user.id)

        response = client.post(f"/jobs/{job.id}/notes", json={"note": "Gate code 1234"}, headers=tech.headers)
        assert response.status_code == 201
        assert response.json()["userId"] == tech.user.id

        empty = client.post(f"/jobs/{job.id}/notes", json={"note": "   "}, headers=tech.headers)
        assert empty.status_code == 400

    def test_techs_cannot_create_jobs(self, client, tech, customer_client):
        response = client.post("/jobs", json={"clientId": customer_client.id, "title": "x"}, headers=tech.headers)
        assert response.status_code == 403
