from datetime import timedelta

import pytest
from conftest import create_client, create_job, enable_automations

from fieldops.domain.estimates import service as estimate_service
from fieldops.domain.invoices import service as invoice_service
from fieldops.models_estimate import Estimate
from fieldops.models_job import Job
from fieldops.shared.dates import utcnow


@pytest.fixture
def outbox(monkeypatch):
    """Captures outgoing estimate and invoice emails"""
    sent = []

    async def fake_estimate_email(estimate, settings):
        sent.append(("estimate", estimate.estimate_number))

    async def fake_approved(estimate, client_name, settings):
        sent.append(("approved", client_name))

    async def fake_invoice_email(invoice, settings):
        sent.append(("invoice", invoice.invoice_number))

    monkeypatch.setattr(estimate_service, "send_estimate_email", fake_estimate_email)
    monkeypatch.setattr(estimate_service, "send_estimate_approved_notification", fake_approved)
    monkeypatch.setattr(invoice_service, "send_invoice_email", fake_invoice_email)
    return sent


@pytest.fixture
def new_estimate(client, owner, customer_client):
    def create(**overrides):
        payload = {
            "clientId": customer_client.id,
            "title": "Fence repair",
            "lineItems": [{"description": "Cedar boards", "quantity": 10, "unitPrice": 12.5}],
        }
        payload.update(overrides)
        response = client.post("/estimates", json=payload, headers=owner.headers)
        assert response.status_code == 201, response.text
        return response.json()

    return create


@pytest.fixture
def sent_estimate(client, owner, new_estimate, outbox):
    def create(**overrides):
        estimate = new_estimate(**overrides)
        response = client.post(f"/estimates/{estimate['id']}/send", headers=owner.headers)
        assert response.status_code == 200, response.text
        return response.json()["estimate"]

    return create


def approve(client, public_id, name="Jane Doe"):
    return client.post(f"/estimates/public/{public_id}/approve", json={"clientName": name, "signature": name})


class TestEstimates:
    def test_create_estimate(self, new_estimate):
        estimate = new_estimate()

        assert estimate["estimateNumber"] == "EST-0001"
        assert estimate["status"] == "draft"
        assert estimate["subtotal"] == 125.0
        assert estimate["taxAmount"] == 10.0
        assert estimate["totalAmount"] == 135.0
        assert estimate["lineItems"][0]["total"] == 125.0
        assert estimate["validUntil"] is not None

    def test_unknown_client(self, client, owner):
        response = client.post("/estimates", json={"clientId": 999, "title": "x"}, headers=owner.headers)
        assert response.status_code == 404

    def test_drafts_are_not_public(self, client, new_estimate):
        estimate = new_estimate()
        assert client.get(f"/estimates/public/{estimate['public_id']}").status_code == 404

    def test_send_estimate(self, client, db, account, owner, new_estimate, outbox):
        enable_automations(db, account)
        estimate = new_estimate()

        body = client.post(f"/estimates/{estimate['id']}/send", headers=owner.headers).json()

        assert body["estimate"]["status"] == "sent"
        assert body["estimate"]["sentDate"] is not None
        assert body["emailSent"] is True
        assert body["emailError"] is None
        assert body["scheduledAutomations"] == 1
        assert outbox == [("estimate", "EST-0001")]

    def test_send_survives_email_failure(self, client, owner, new_estimate, monkeypatch):
        async def broken(estimate, settings):
            raise RuntimeError("mail provider down")

        monkeypatch.setattr(estimate_service, "send_estimate_email", broken)
        estimate = new_estimate()

        body = client.post(f"/estimates/{estimate['id']}/send", headers=owner.headers).json()

        assert body["estimate"]["status"] == "sent"
        assert body["emailSent"] is False
        assert body["emailError"] == "mail provider down"

    def test_send_requires_client_email(self, client, db, account, owner, new_estimate):
        silent = create_client(db, account, "Quiet", email=None)
        estimate = new_estimate(clientId=silent.id)
        assert client.post(f"/estimates/{estimate['id']}/send", headers=owner.headers).status_code == 400

    def test_public_view_marks_viewed(self, client, sent_estimate):
        estimate = sent_estimate()

        page = client.get(f"/estimates/public/{estimate['public_id']}")

        assert page.status_code == 200
        assert page.json()["status"] == "viewed"
        assert page.json()["businessName"] == "Acme Field Services"
        assert "approvalInfo" not in page.json()

    def test_approval_creates_quote_job(self, client, db, sent_estimate, outbox):
        estimate = sent_estimate()

        response = approve(client, estimate["public_id"])

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Estimate approved"
        assert body["status"] == "accepted"
        assert body["jobNumber"] == "JOB-00001"

        job = db.query(Job).filter(Job.public_id == body["jobId"]).one()
        assert job.status == "quote"
        assert job.estimate_id == estimate["id"]
        assert job.total_amount == 135.0
        assert [item.description for item in job.line_items] == ["Cedar boards"]

        stored = db.get(Estimate, estimate["id"])
        assert stored.approval_info["client_name"] == "Jane Doe"
        assert ("approved", "Jane Doe") in outbox

    def test_cannot_approve_twice(self, client, sent_estimate):
        estimate = sent_estimate()
        approve(client, estimate["public_id"])
        assert approve(client, estimate["public_id"]).status_code == 400

    def test_approval_needs_signature(self, client, sent_estimate):
        estimate = sent_estimate()
        response = client.post(
            f"/estimates/public/{estimate['public_id']}/approve", json={"clientName": "Jane", "signature": " "}
        )
        assert response.status_code == 422

    def test_expired_estimate(self, client, owner, sent_estimate):
        past = (utcnow() - timedelta(days=1)).isoformat()
        estimate = sent_estimate(validUntil=past)

        response = approve(client, estimate["public_id"])

        assert response.status_code == 400
        assert response.json()["detail"] == "This estimate has expired"
        stored = client.get(f"/estimates/{estimate['id']}", headers=owner.headers).json()
        assert stored["status"] == "expired"

    def test_decline(self, client, owner, sent_estimate):
        estimate = sent_estimate()

        response = client.post(
            f"/estimates/public/{estimate['public_id']}/decline", json={"reason": "Too expensive"}
        )

        assert response.json() == {"message": "Estimate declined", "status": "declined"}
        stored = client.get(f"/estimates/{estimate['id']}", headers=owner.headers).json()
        assert stored["declineReason"] == "Too expensive"
        assert approve(client, estimate["public_id"]).status_code == 400

    def test_stats(self, client, owner, new_estimate, sent_estimate):
        new_estimate()
        accepted = sent_estimate()
        declined = sent_estimate()
        approve(client, accepted["public_id"])
        client.post(f"/estimates/public/{declined['public_id']}/decline", json={})

        stats = client.get("/estimates/stats", headers=owner.headers).json()

        assert stats["total"] == 3
        assert stats["byStatus"]["draft"] == 1
        assert stats["byStatus"]["accepted"] == 1
        assert stats["byStatus"]["declined"] == 1
        assert stats["conversionRate"] == 50.0

    def test_accepted_estimates_are_frozen(self, client, owner, sent_estimate):
        estimate = sent_estimate()
        approve(client, estimate["public_id"])

        assert client.put(f"/estimates/{estimate['id']}", json={"title": "x"}, headers=owner.headers).status_code == 400
        assert client.delete(f"/estimates/{estimate['id']}", headers=owner.headers).status_code == 409

    def test_update_recalculates_totals(self, client, owner, new_estimate):
        estimate = new_estimate()
        updated = client.put(
            f"/estimates/{estimate['id']}",
            json={"lineItems": [{"description": "Posts", "quantity": 4, "unitPrice": 25}], "taxRate": 0},
            headers=owner.headers,
        ).json()
        assert updated["subtotal"] == 100.0
        assert updated["totalAmount"] == 100.0

    def test_delete_draft(self, client, owner, new_estimate):
        estimate = new_estimate()
        assert client.delete(f"/estimates/{estimate['id']}", headers=owner.headers).status_code == 200
        assert client.get(f"/estimates/{estimate['id']}", headers=owner.headers).status_code == 404


@pytest.fixture
def completed_job(db, account, customer_client):
    return create_job(db, account, customer_client, status="completed")


@pytest.fixture
def invoice(client, owner, completed_job):
    response = client.post(f"/invoices/from-job/{completed_job.id}", headers=owner.headers)
    assert response.status_code == 201, response.text
    return response.json()


def pay(client, headers, invoice_id, amount):
    return client.post(f"/invoices/{invoice_id}/payments", json={"amount": amount}, headers=headers)


class TestInvoices:
    def test_invoice_from_completed_job(self, client, db, owner, invoice, completed_job):
        assert invoice["invoiceNumber"] == "INV-0001"
        assert invoice["status"] == "draft"
        assert invoice["totalAmount"] == 108.0
        assert invoice["balanceDue"] == 108.0
        assert invoice["jobId"] == completed_job.id

        db.refresh(completed_job)
        assert completed_job.status == "invoiced"

    def test_one_invoice_per_job(self, client, owner, invoice, completed_job):
        response = client.post(f"/invoices/from-job/{completed_job.id}", headers=owner.headers)
        assert response.status_code == 409

    def test_job_must_be_ready(self, client, db, account, owner, customer_client):
        job = create_job(db, account, customer_client, status="scheduled")
        assert client.post(f"/invoices/from-job/{job.id}", headers=owner.headers).status_code == 400

    def test_unknown_job(self, client, owner):
        assert client.post("/invoices/from-job/999", headers=owner.headers).status_code == 404

    def test_send_invoice(self, client, db, account, owner, invoice, outbox):
        enable_automations(db, account)

        body = client.post(f"/invoices/{invoice['id']}/send", headers=owner.headers).json()

        assert body["invoice"]["status"] == "sent"
        assert body["invoice"]["sentAt"] is not None
        assert body["emailSent"] is True
        assert body["scheduledAutomations"] == 4
        assert outbox == [("invoice", "INV-0001")]

    def test_payments_move_invoice_status(self, client, owner, invoice, outbox):
        client.post(f"/invoices/{invoice['id']}/send", headers=owner.headers)

        partial = pay(client, owner.headers, invoice["id"], 50)
        assert partial.status_code == 201
        assert partial.json()["status"] == "partial"
        assert partial.json()["balanceDue"] == 58.0

        paid = pay(client, owner.headers, invoice["id"], 58).json()
        assert paid["status"] == "paid"
        assert paid["paidAt"] is not None
        assert paid["balanceDue"] == 0

        assert pay(client, owner.headers, invoice["id"], 1).status_code == 400
        assert client.post(f"/invoices/{invoice['id']}/void", headers=owner.headers).status_code == 400

    def test_removing_payments_returns_to_sent(self, client, owner, invoice, outbox):
        client.post(f"/invoices/{invoice['id']}/send", headers=owner.headers)
        payment = pay(client, owner.headers, invoice["id"], 20).json()["payments"][0]

        body = client.delete(f"/invoices/{invoice['id']}/payments/{payment['id']}", headers=owner.headers).json()

        assert body["status"] == "sent"
        assert body["amountPaid"] == 0

    def test_job_payments_carry_over_to_invoice(self, client, owner, completed_job, outbox):
        client.post(
            f"/jobs/{completed_job.id}/payments", json={"amount": 50, "method": "cash"}, headers=owner.headers
        )

        created = client.post(f"/invoices/from-job/{completed_job.id}", headers=owner.headers).json()
        assert created["status"] == "partial"
        assert created["amountPaid"] == 50.0
        assert created["payments"][0]["method"] == "cash"

        client.post(f"/invoices/{created['id']}/send", headers=owner.headers)
        body = pay(client, owner.headers, created["id"], 10).json()

        assert body["amountPaid"] == 60.0
        assert body["balanceDue"] == 48.0
        assert body["status"] == "partial"

        paid = pay(client, owner.headers, created["id"], 48).json()
        assert paid["status"] == "paid"

    def test_fully_paid_job_invoices_as_paid(self, client, owner, completed_job):
        client.post(f"/jobs/{completed_job.id}/payments", json={"amount": 108}, headers=owner.headers)

        created = client.post(f"/invoices/from-job/{completed_job.id}", headers=owner.headers).json()

        assert created["status"] == "paid"
        assert created["paidAt"] is not None
        assert created["balanceDue"] == 0

    def test_void_invoice(self, client, owner, invoice):
        voided = client.post(f"/invoices/{invoice['id']}/void", headers=owner.headers).json()

        assert voided["status"] == "void"
        assert voided["voidedAt"] is not None
        assert pay(client, owner.headers, invoice["id"], 10).status_code == 400
        assert client.post(f"/invoices/{invoice['id']}/send", headers=owner.headers).status_code == 400

    def test_invalid_payment(self, client, owner, invoice):
        assert pay(client, owner.headers, invoice["id"], 0).status_code == 422

    def test_pdf(self, client, owner, invoice):
        response = client.get(f"/invoices/{invoice['id']}/pdf", headers=owner.headers)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="INV-0001.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_list_filters_by_status(self, client, owner, invoice):
        assert len(client.get("/invoices", params={"status": "draft"}, headers=owner.headers).json()) == 1
        assert client.get("/invoices", params={"status": "paid"}, headers=owner.headers).json() == []

    def test_techs_cannot_see_invoices(self, client, tech):
        assert client.get("/invoices", headers=tech.headers).status_code == 403
