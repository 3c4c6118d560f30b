import json
from datetime import timedelta

import pytest
from conftest import add_member, create_job, enable_automations

from fieldops.models_automation import Automation
from fieldops.models_email import EmailRaw
from fieldops.services import ai_messages
from fieldops.shared.dates import utcnow
from fieldops.webhook_security import compute_hmac_sha256

CRON = {"X-Cron-Secret": "cron-secret"}
WEBHOOK = {"X-Webhook-Secret": "email-secret"}


@pytest.fixture(autouse=True)
def fake_ai(monkeypatch):
    async def fake_generate(prompt):
        return "Thanks for choosing us!"

    monkeypatch.setattr(ai_messages, "_generate_message", fake_generate)


def queue(db, account, automation_type, related_id, minutes_ago=5):
    automation = Automation(
        account_id=account.id,
        type=automation_type,
        related_id=related_id,
        run_at=utcnow() - timedelta(minutes=minutes_ago),
        status="pending",
        attempts=0,
        payload={},
    )
    db.add(automation)
    db.commit()
    db.refresh(automation)
    return automation


@pytest.fixture
def closeout(db, account, customer_client):
    enable_automations(db, account)
    job = create_job(db, account, customer_client, status="completed")
    return queue(db, account, "job_closeout", job.id)


class TestAutomationRun:
    def test_cron_runs_every_account(self, client, db, closeout, other_account, customer_client):
        enable_automations(db, other_account)
        elsewhere = queue(db, other_account, "job_closeout", closeout.related_id)

        body = client.post("/automation/run", headers=CRON).json()

        assert body["attempted"] == 2
        assert sorted(r["id"] for r in body["results"]) == sorted([closeout.id, elsewhere.id])

    def test_cron_get_is_supported(self, client, closeout):
        body = client.get("/automation/run", headers=CRON).json()
        assert body["processed"] == 1

    def test_staff_run_only_their_account(self, client, db, owner, closeout, other_account):
        enable_automations(db, other_account)
        elsewhere = queue(db, other_account, "job_closeout", closeout.related_id)

        body = client.post("/automation/run", headers=owner.headers).json()

        assert [r["id"] for r in body["results"]] == [closeout.id]
        db.refresh(elsewhere)
        assert elsewhere.status == "pending"

    def test_techs_cannot_run(self, client, tech, closeout):
        assert client.post("/automation/run", headers=tech.headers).status_code == 403

    def test_requires_credentials(self, client, closeout):
        assert client.post("/automation/run").status_code == 401
        assert client.post("/automation/run", headers={"X-Cron-Secret": "guess"}).status_code == 401

    def test_nothing_due(self, client):
        assert client.post("/automation/run", headers=CRON).json() == {"attempted": 0, "processed": 0, "results": []}


class TestAutomationQueueApi:
    def test_list_includes_history(self, client, owner, closeout):
        client.post("/automation/run", headers=CRON)

        automations = client.get("/automations", headers=owner.headers).json()

        assert len(automations) == 1
        assert automations[0]["status"] == "completed"
        assert automations[0]["result"]["message"] == "Thanks for choosing us!"
        assert [h["message"] for h in automations[0]["history"]][0] == "Picked up by scheduler"

    def test_filter_by_status(self, client, owner, closeout):
        assert len(client.get("/automations", params={"status": "pending"}, headers=owner.headers).json()) == 1
        assert client.get("/automations", params={"status": "failed"}, headers=owner.headers).json() == []
        assert client.get("/automations", params={"status": "bogus"}, headers=owner.headers).status_code == 400

    def test_cancel(self, client, owner, closeout):
        response = client.post(f"/automations/{closeout.id}/cancel", headers=owner.headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        assert client.post(f"/automations/{closeout.id}/cancel", headers=owner.headers).status_code == 409
        assert client.post("/automations/999/cancel", headers=owner.headers).status_code == 404

    def test_cancelled_rows_are_not_run(self, client, owner, closeout):
        client.post(f"/automations/{closeout.id}/cancel", headers=owner.headers)
        assert client.post("/automation/run", headers=CRON).json()["attempted"] == 0

    def test_other_accounts_cannot_cancel(self, client, db, closeout, other_account):
        outsider = add_member(db, other_account, "OWNER", "outsider")
        assert client.post(f"/automations/{closeout.id}/cancel", headers=outsider.headers).status_code == 404

    def test_techs_cannot_see_queue(self, client, tech):
        assert client.get("/automations", headers=tech.headers).status_code == 403


def inbound(message_id="msg-1", **overrides):
    payload = {
        "messageId": message_id,
        "fromAddress": "sam@example.com",
        "subject": "Looking for a quote",
        "bodyText": "Hi, my name is Sam Roe and I need service at my house.",
    }
    payload.update(overrides)
    return payload


class TestEmailIntake:
    def test_intake_with_shared_secret(self, client, account):
        response = client.post(f"/email/intake/{account.public_id}", json=inbound(), headers=WEBHOOK)

        assert response.status_code == 202
        body = response.json()
        assert body["created"] is True
        assert body["status"] == "pending"

        again = client.post(f"/email/intake/{account.public_id}", json=inbound(), headers=WEBHOOK).json()
        assert again == {"emailId": body["emailId"], "created": False, "status": "pending"}

    def test_intake_with_signature(self, client, db, account):
        raw = json.dumps(inbound("signed-1")).encode()
        signature = f"sha256={compute_hmac_sha256('email-secret', raw)}"

        response = client.post(
            f"/email/intake/{account.public_id}",
            content=raw,
            headers={"Content-Type": "application/json", "X-Webhook-Signature": signature},
        )

        assert response.status_code == 202
        assert db.query(EmailRaw).filter(EmailRaw.message_id == "signed-1").count() == 1

    @pytest.mark.parametrize(
        "headers",
        [{}, {"X-Webhook-Secret": "wrong"}, {"X-Webhook-Signature": "sha256=deadbeef"}],
    )
    def test_intake_rejects_bad_credentials(self, client, db, account, headers):
        response = client.post(f"/email/intake/{account.public_id}", json=inbound(), headers=headers)
        assert response.status_code == 401
        assert db.query(EmailRaw).count() == 0

    def test_intake_unknown_account(self, client):
        response = client.post("/email/intake/not-an-account", json=inbound(), headers=WEBHOOK)
        assert response.status_code == 404

    def test_intake_requires_message_id(self, client, account):
        response = client.post(
            f"/email/intake/{account.public_id}", json=inbound(message_id="   "), headers=WEBHOOK
        )
        assert response.status_code == 422

    def test_process_now_without_openai(self, client, account):
        body = client.post(
            f"/email/intake/{account.public_id}", json=inbound(processNow=True), headers=WEBHOOK
        ).json()

        assert body["status"] == "completed"
        assert body["result"]["success"] is True
        assert body["result"]["category"] == "LEAD_NEW"


class TestInsightsAndAlerts:
    @pytest.fixture
    def processed(self, client, account):
        client.post(f"/email/intake/{account.public_id}", json=inbound(processNow=True), headers=WEBHOOK)

    def test_insights(self, client, owner, processed):
        insights = client.get("/email-intelligence/insights", headers=owner.headers).json()

        assert len(insights) == 1
        assert insights[0]["category"] == "LEAD_NEW"
        assert insights[0]["isActionRequired"] is True
        assert insights[0]["email"]["subject"] == "Looking for a quote"

        filtered = client.get(
            "/email-intelligence/insights", params={"category": "VENDOR_RECEIPT"}, headers=owner.headers
        ).json()
        assert filtered == []

    def test_invalid_insight_category(self, client, owner):
        response = client.get("/email-intelligence/insights", params={"category": "NOPE"}, headers=owner.headers)
        assert response.status_code == 400

    def test_resolve_alert(self, client, owner, processed):
        alerts = client.get("/alerts", headers=owner.headers).json()
        assert [a["title"] for a in alerts] == ["New Lead: Sam Roe"]

        resolved = client.post(
            f"/alerts/{alerts[0]['id']}/resolve", json={"notes": "Called back"}, headers=owner.headers
        ).json()

        assert resolved["resolved"] is True
        assert resolved["resolutionNotes"] == "Called back"
        assert client.get("/alerts", headers=owner.headers).json() == []
        assert len(client.get("/alerts", params={"resolved": True}, headers=owner.headers).json()) == 1

    def test_resolve_unknown_alert(self, client, owner):
        assert client.post("/alerts/999/resolve", json={}, headers=owner.headers).status_code == 404

    def test_alerts_of_other_accounts_are_hidden(self, client, db, processed, other_account):
        outsider = add_member(db, other_account, "OWNER", "outsider")
        assert client.get("/alerts", headers=outsider.headers).json() == []

    def test_daily_summary(self, client, owner, processed):
        summary = client.get("/email-intelligence/daily-summary", headers=owner.headers).json()
        assert summary["emails_processed"] == 1
        assert summary["new_leads"] == 1
        assert summary["open_alerts"] == 1

    def test_process_backlog(self, client, owner, account):
        client.post(f"/email/intake/{account.public_id}", json=inbound("a"), headers=WEBHOOK)
        client.post(f"/email/intake/{account.public_id}", json=inbound("b"), headers=WEBHOOK)

        body = client.post("/email-intelligence/process", json={}, headers=owner.headers).json()

        assert body["processed"] == 2
        assert body["succeeded"] == 2

    def test_techs_cannot_see_insights(self, client, tech):
        assert client.get("/email-intelligence/insights", headers=tech.headers).status_code == 403
