import pytest
from conftest import create_client, create_job, enable_automations

from fieldops.models import Activity, Client, Lead
from fieldops.models_automation import Automation
from fieldops.models_estimate import Estimate
from fieldops.routes import portal
from fieldops.services.job_automation import generate_invoice_for_job


@pytest.fixture
def square(monkeypatch):
    """Stands in for Square payment links and the business notification email"""
    calls = {"links": [], "notifications": []}

    async def fake_link(db, invoice):
        calls["links"].append(invoice.invoice_number)
        return f"https://square.link/u/{invoice.public_id}"

    async def fake_notify(client, subject, message, settings):
        calls["notifications"].append(subject)
        return {"id": "email-1"}

    monkeypatch.setattr(portal, "create_payment_link", fake_link)
    monkeypatch.setattr(portal, "send_contact_request_notification", fake_notify)
    return calls


def make_invoice(db, account, client, status="sent"):
    job = create_job(db, account, client, status="completed")
    invoice = generate_invoice_for_job(db, job).invoice
    invoice.status = status
    db.commit()
    return invoice


class TestPortal:
    def test_profile(self, client, customer, customer_client):
        body = client.get("/portal/me", headers=customer.headers).json()
        assert body == {
            "clientId": customer_client.public_id,
            "name": "Jane Doe",
            "email": "jane@example.com",
            "phone": "+15555550100",
            "address": None,
            "businessName": "Acme Field Services",
        }

    def test_staff_cannot_use_portal(self, client, owner):
        assert client.get("/portal/me", headers=owner.headers).status_code == 403

    def test_jobs_hide_drafts_and_other_clients(self, client, db, account, customer, customer_client):
        create_job(db, account, customer_client, status="draft", title="Secret draft")
        scheduled = create_job(db, account, customer_client, status="scheduled")
        completed = create_job(db, account, customer_client, status="completed")
        create_job(db, account, create_client(db, account, "Neighbor"), status="scheduled")

        body = client.get("/portal/jobs", headers=customer.headers).json()

        assert [j["id"] for j in body["upcoming"]] == [scheduled.public_id]
        assert [j["id"] for j in body["history"]] == [completed.public_id]
        assert "assignedTo" not in body["upcoming"][0]

    def test_invoices_hide_drafts(self, client, db, account, customer, customer_client):
        make_invoice(db, account, customer_client, status="draft")
        sent = make_invoice(db, account, customer_client, status="sent")

        body = client.get("/portal/invoices", headers=customer.headers).json()

        assert [i["invoiceNumber"] for i in body] == [sent.invoice_number]

    def test_estimates_hide_drafts(self, client, db, account, customer, customer_client):
        for number, status in (("EST-0001", "draft"), ("EST-0002", "sent")):
            db.add(
                Estimate(
                    account_id=account.id,
                    client_id=customer_client.id,
                    estimate_number=number,
                    title="Fence repair",
                    status=status,
                )
            )
        db.commit()

        body = client.get("/portal/estimates", headers=customer.headers).json()

        assert [e["estimateNumber"] for e in body] == ["EST-0002"]

    def test_pay_invoice(self, client, db, account, customer, customer_client, square):
        invoice = make_invoice(db, account, customer_client)

        response = client.post(f"/portal/invoices/{invoice.public_id}/pay", headers=customer.headers)

        assert response.status_code == 200
        assert response.json() == {
            "paymentUrl": f"https://square.link/u/{invoice.public_id}",
            "amount": 108.0,
            "invoiceNumber": invoice.invoice_number,
        }
        assert square["links"] == [invoice.invoice_number]

    def test_cannot_pay_someone_elses_invoice(self, client, db, account, customer, square):
        invoice = make_invoice(db, account, create_client(db, account, "Neighbor"))
        response = client.post(f"/portal/invoices/{invoice.public_id}/pay", headers=customer.headers)
        assert response.status_code == 403
        assert square["links"] == []

    @pytest.mark.parametrize("status", ["draft", "paid", "void"])
    def test_only_open_invoices_are_payable(self, client, db, account, customer, customer_client, square, status):
        invoice = make_invoice(db, account, customer_client, status=status)
        response = client.post(f"/portal/invoices/{invoice.public_id}/pay", headers=customer.headers)
        assert response.status_code == 400

    def test_pay_unknown_invoice(self, client, customer, square):
        assert client.post("/portal/invoices/nope/pay", headers=customer.headers).status_code == 404

    def test_contact_request(self, client, db, customer, customer_client, square):
        response = client.post(
            "/portal/contact",
            json={"subject": "Reschedule", "message": "Can we move to Friday?"},
            headers=customer.headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["notified"] is True
        activity = db.get(Activity, body["activityId"])
        assert activity.activity_type == "contact_request"
        assert activity.status == "pending"
        assert activity.client_id == customer_client.id
        assert square["notifications"] == ["Reschedule"]

    def test_contact_request_survives_mail_failure(self, client, customer, monkeypatch):
        async def broken(client, subject, message, settings):
            raise RuntimeError("RESEND_API_KEY is not configured")

        monkeypatch.setattr(portal, "send_contact_request_notification", broken)
        response = client.post(
            "/portal/contact", json={"subject": "Hello", "message": "Question"}, headers=customer.headers
        )
        assert response.status_code == 201
        assert response.json()["notified"] is False

    def test_contact_request_needs_subject(self, client, customer):
        response = client.post("/portal/contact", json={"subject": " ", "message": "Hi"}, headers=customer.headers)
        assert response.status_code == 422


def create_lead(client, headers, **overrides):
    payload = {"firstName": "Sam", "lastName": "Lee", "email": "sam@example.com", "serviceType": "Gutters"}
    payload.update(overrides)
    response = client.post("/leads", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestLeads:
    def test_create_lead(self, client, owner):
        lead = create_lead(client, owner.headers, phone="555 123 4567")
        assert lead["status"] == "new"
        assert lead["source"] == "website"
        assert lead["phone"] == "+15551234567"

    def test_new_lead_schedules_response(self, client, db, account, owner):
        enable_automations(db, account)
        lead = create_lead(client, owner.headers)

        automation = db.query(Automation).filter(Automation.related_id == lead["id"]).one()
        assert automation.type == "lead_response"
        assert automation.payload == {"lead_name": "Sam"}

    @pytest.mark.parametrize(
        "overrides", [{"source": "billboard"}, {"phone": "12"}, {"email": "not-an-email"}, {"firstName": " "}]
    )
    def test_invalid_leads(self, client, owner, overrides):
        payload = {"firstName": "Sam", **overrides}
        assert client.post("/leads", json=payload, headers=owner.headers).status_code == 422

    def test_update_lead(self, client, owner):
        lead = create_lead(client, owner.headers)
        updated = client.put(f"/leads/{lead['id']}", json={"status": "contacted"}, headers=owner.headers)
        assert updated.json()["status"] == "contacted"

    def test_status_cannot_be_set_to_converted(self, client, owner):
        lead = create_lead(client, owner.headers)
        response = client.put(f"/leads/{lead['id']}", json={"status": "converted"}, headers=owner.headers)
        assert response.status_code == 422

    def test_convert_lead(self, client, db, owner):
        lead = create_lead(client, owner.headers)

        response = client.post(f"/leads/{lead['id']}/convert", headers=owner.headers)

        assert response.status_code == 200
        body = response.json()
        assert body["lead"]["status"] == "converted"
        assert body["lead"]["convertedClientId"] == body["clientId"]
        new_client = db.get(Client, body["clientId"])
        assert new_client.first_name == "Sam"
        assert new_client.email == "sam@example.com"
        assert new_client.source == "lead"

        assert client.post(f"/leads/{lead['id']}/convert", headers=owner.headers).status_code == 409
        assert client.put(f"/leads/{lead['id']}", json={"notes": "x"}, headers=owner.headers).status_code == 400

    def test_analytics(self, client, owner):
        first = create_lead(client, owner.headers)
        create_lead(client, owner.headers, firstName="Ana", source="referral")
        client.post(f"/leads/{first['id']}/convert", headers=owner.headers)

        body = client.get("/leads/analytics", headers=owner.headers).json()

        assert body["total"] == 2
        assert body["byStatus"]["converted"] == 1
        assert body["byStatus"]["new"] == 1
        assert body["bySource"] == {"website": 1, "referral": 1}
        assert body["conversionRate"] == 50.0

    def test_leads_are_scoped_to_account(self, client, db, owner, other_account):
        lead = create_lead(client, owner.headers)
        db.add(Lead(account_id=other_account.id, first_name="Other"))
        db.commit()

        listed = client.get("/leads", headers=owner.headers).json()

        assert [entry["id"] for entry in listed] == [lead["id"]]

    def test_delete_lead(self, client, owner):
        lead = create_lead(client, owner.headers)
        assert client.delete(f"/leads/{lead['id']}", headers=owner.headers).status_code == 200
        assert client.get(f"/leads/{lead['id']}", headers=owner.headers).status_code == 404

    def test_techs_cannot_see_leads(self, client, tech):
        assert client.get("/leads", headers=tech.headers).status_code == 403
