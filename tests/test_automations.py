import json
from datetime import datetime, timedelta

import pytest
from conftest import create_client, create_job, enable_automations

from fieldops.models import Lead
from fieldops.models_automation import Automation, AutomationHistory
from fieldops.models_estimate import Estimate
from fieldops.models_invoice import Invoice
from fieldops.services import ai_messages
from fieldops.services.automation_queue import (
    cancel_automation,
    claim_automation,
    get_due_automations,
    schedule_automation,
    update_automation_status,
)
from fieldops.services.automation_runner import calculate_days_overdue, run_due_automations
from fieldops.services.automation_triggers import (
    schedule_invoice_followups,
    schedule_job_completion_automations,
    schedule_lead_response,
)
from fieldops.shared.dates import utcnow


@pytest.fixture
def fake_ai(monkeypatch):
    prompts = []

    async def fake_generate(prompt):
        prompts.append(prompt)
        return "Thanks for choosing us!"

    monkeypatch.setattr(ai_messages, "_generate_message", fake_generate)
    return prompts


def history_messages(db, automation_id):
    rows = (
        db.query(AutomationHistory)
        .filter(AutomationHistory.automation_id == automation_id)
        .order_by(AutomationHistory.id.asc())
        .all()
    )
    return [row.message for row in rows]


def make_invoice(db, account, client, status="sent", due_in_days=-10, number="INV-0001"):
    now = utcnow()
    invoice = Invoice(
        account_id=account.id,
        client_id=client.id,
        invoice_number=number,
        title="Spring cleanup",
        line_items=[],
        total_amount=200.0,
        status=status,
        issue_date=now - timedelta(days=30),
        due_date=now + timedelta(days=due_in_days),
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice


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


def test_schedule_returns_none_when_disabled(db, account):
    assert schedule_automation(db, account.id, "lead_response", 1, utcnow()) is None
    assert db.query(Automation).count() == 0


def test_schedule_rejects_unknown_type(db, account):
    with pytest.raises(ValueError):
        schedule_automation(db, account.id, "fax_blast", 1, utcnow())


def test_schedule_is_idempotent(db, account):
    enable_automations(db, account)
    run_at = datetime(2030, 1, 1, 9, 0)

    first = schedule_automation(db, account.id, "lead_response", 7, run_at)
    second = schedule_automation(db, account.id, "lead_response", 7, run_at)

    assert first.id == second.id
    assert first.status == "pending"
    assert history_messages(db, first.id) == ["Automation scheduled"]


def test_claim_only_succeeds_once(db, account):
    automation = queue(db, account, "lead_response", 1)

    claimed = claim_automation(db, automation)
    assert claimed.status == "processing"
    assert claimed.attempts == 1
    assert claimed.last_attempt is not None

    assert claim_automation(db, automation) is None
    assert history_messages(db, automation.id) == ["Picked up by scheduler"]


def test_due_automations_skip_future_and_non_pending(db, account):
    due = queue(db, account, "lead_response", 1)
    queue(db, account, "lead_response", 2, minutes_ago=-60)
    done = queue(db, account, "lead_response", 3)
    done.status = "completed"
    db.commit()

    assert [a.id for a in get_due_automations(db)] == [due.id]


def test_cancel_pending_automation(db, account, other_account):
    automation = queue(db, account, "job_closeout", 1)

    assert cancel_automation(db, other_account.id, automation.id) is None

    cancelled = cancel_automation(db, account.id, automation.id)
    assert cancelled.status == "cancelled"
    assert history_messages(db, automation.id) == ["Cancelled by user"]

    assert cancel_automation(db, account.id, automation.id) is None


def test_update_status_rejects_unknown_status(db, account):
    automation = queue(db, account, "job_closeout", 1)
    with pytest.raises(ValueError):
        update_automation_status(db, automation.id, "exploded")


def test_invoice_followups_use_issue_date_offsets(db, account, customer_client):
    enable_automations(db, account)
    invoice = make_invoice(db, account, customer_client)

    scheduled = schedule_invoice_followups(db, invoice)

    offsets = [(a.run_at - invoice.issue_date).days for a in scheduled]
    assert offsets == [3, 7, 14, 30]
    assert all(a.related_id == invoice.id for a in scheduled)


def test_invoice_followups_skip_paid_invoices(db, account, customer_client):
    enable_automations(db, account)
    invoice = make_invoice(db, account, customer_client, status="paid")
    assert schedule_invoice_followups(db, invoice) == []


def test_job_completion_automations(db, account, customer_client):
    enable_automations(db, account)
    job = create_job(db, account, customer_client, status="completed")

    scheduled = schedule_job_completion_automations(db, job)

    by_type = {a.type: a.run_at - job.completed_at for a in scheduled}
    assert by_type == {"job_closeout": timedelta(hours=1), "review_request": timedelta(hours=24)}


def test_job_completion_automations_need_completed_job(db, account, customer_client):
    enable_automations(db, account)
    job = create_job(db, account, customer_client, status="in_progress")
    assert schedule_job_completion_automations(db, job) == []


def test_lead_response_runs_immediately(db, account):
    enable_automations(db, account, job_closeout=False)
    lead = Lead(account_id=account.id, first_name="Sam", source="website", status="new")
    db.add(lead)
    db.commit()
    db.refresh(lead)

    (automation,) = schedule_lead_response(db, lead)
    assert automation.run_at == lead.created_at
    assert automation.payload == {"lead_name": "Sam"}


def test_days_overdue():
    now = datetime(2030, 1, 10, 12, 0)
    assert calculate_days_overdue(None, now) == 0
    assert calculate_days_overdue(datetime(2030, 1, 20), now) == 0
    assert calculate_days_overdue(datetime(2030, 1, 8, 13, 0), now) == 1
    assert calculate_days_overdue(datetime(2030, 1, 3, 12, 0), now) == 7


async def test_runner_completes_job_closeout(db, account, customer_client, fake_ai):
    enable_automations(db, account)
    job = create_job(db, account, customer_client, status="completed")
    automation = queue(db, account, "job_closeout", job.id)

    summary = await run_due_automations(db)

    assert summary == {
        "attempted": 1,
        "processed": 1,
        "results": [{"id": automation.id, "type": "job_closeout", "status": "processed"}],
    }
    db.refresh(automation)
    assert automation.status == "completed"
    assert automation.result == {"message": "Thanks for choosing us!", "type": "job_closeout", "job_id": job.id}
    assert history_messages(db, automation.id) == [
        "Picked up by scheduler",
        "Completed job closeout",
        "AI response: Thanks for choosing us!",
    ]
    assert job.job_number in fake_ai[0]


async def test_runner_invoice_followup_includes_days_overdue(db, account, customer_client, fake_ai):
    enable_automations(db, account)
    invoice = make_invoice(db, account, customer_client, due_in_days=-10)
    automation = queue(db, account, "invoice_followup", invoice.id)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.status == "completed"
    assert automation.result["invoice_id"] == invoice.id
    assert automation.result["days_overdue"] in (9, 10)


async def test_runner_skips_paid_invoice(db, account, customer_client, fake_ai):
    enable_automations(db, account)
    invoice = make_invoice(db, account, customer_client, status="paid")
    automation = queue(db, account, "invoice_followup", invoice.id)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.status == "completed"
    assert automation.result == {"skipped": True, "reason": "Invoice already paid", "invoice_id": invoice.id}
    assert fake_ai == []


async def test_runner_skips_accepted_estimate(db, account, customer_client, fake_ai):
    enable_automations(db, account)
    estimate = Estimate(
        account_id=account.id,
        client_id=customer_client.id,
        estimate_number="EST-0001",
        title="Fence repair",
        status="accepted",
    )
    db.add(estimate)
    db.commit()
    automation = queue(db, account, "estimate_followup", estimate.id)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.result["skipped"] is True
    assert automation.result["reason"] == "Estimate already accepted"


async def test_runner_skips_disabled_type(db, account, customer_client, fake_ai):
    job = create_job(db, account, customer_client, status="completed")
    automation = queue(db, account, "job_closeout", job.id)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.status == "completed"
    assert automation.result == {"skipped": True, "reason": "Automation disabled in settings"}


async def test_runner_fails_unknown_type(db, account, fake_ai):
    enable_automations(db, account)
    automation = queue(db, account, "fax_blast", 1)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.status == "failed"
    assert automation.result == {"error": "Unknown automation type: fax_blast"}


async def test_runner_fails_missing_entity(db, account, fake_ai):
    enable_automations(db, account)
    missing_related = queue(db, account, "lead_response", None)
    missing_lead = queue(db, account, "lead_response", 999)

    await run_due_automations(db)

    db.refresh(missing_related)
    db.refresh(missing_lead)
    assert missing_related.result == {"error": "Missing related lead"}
    assert missing_lead.result == {"error": "Lead not found"}


async def test_runner_fails_review_request_without_contact(db, account, fake_ai):
    enable_automations(db, account)
    client = create_client(db, account, "Quiet", email=None, phone=None)
    job = create_job(db, account, client, status="completed")
    automation = queue(db, account, "review_request", job.id)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.status == "failed"
    assert "no email or phone" in automation.result["error"]


async def test_runner_records_ai_errors(db, account, customer_client, monkeypatch):
    enable_automations(db, account)

    async def broken(prompt):
        raise ai_messages.AIResponseError("No content received from OpenAI")

    monkeypatch.setattr(ai_messages, "_generate_message", broken)
    job = create_job(db, account, customer_client, status="completed")
    automation = queue(db, account, "job_closeout", job.id)

    summary = await run_due_automations(db)

    assert summary["processed"] == 1
    db.refresh(automation)
    assert automation.status == "failed"
    assert automation.result == {"error": "No content received from OpenAI"}
    assert history_messages(db, automation.id)[-1] == "Failed: No content received from OpenAI"


async def test_runner_fails_without_ai_key(db, account, customer_client):
    enable_automations(db, account)
    job = create_job(db, account, customer_client, status="completed")
    automation = queue(db, account, "job_closeout", job.id)

    await run_due_automations(db)

    db.refresh(automation)
    assert automation.status == "failed"
    assert automation.result == {"error": "OpenAI API key not configured"}


async def test_runner_scopes_to_account(db, account, other_account, customer_client, fake_ai):
    enable_automations(db, account)
    enable_automations(db, other_account)
    job = create_job(db, account, customer_client, status="completed")
    mine = queue(db, account, "job_closeout", job.id)
    theirs = queue(db, other_account, "job_closeout", job.id)

    summary = await run_due_automations(db, account_id=account.id)

    assert [r["id"] for r in summary["results"]] == [mine.id]
    db.refresh(theirs)
    assert theirs.status == "pending"


@pytest.fixture
def openai_api(monkeypatch):
    calls = []
    replies = []
    real_client = ai_messages.httpx.AsyncClient

    def handler(request):
        calls.append(request)
        return replies.pop(0)

    monkeypatch.setattr(ai_messages, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(
        ai_messages.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=ai_messages.httpx.MockTransport(handler), **kwargs),
    )
    return calls, replies


async def test_chat_completion_returns_reply(openai_api):
    calls, replies = openai_api
    replies.append(
        ai_messages.httpx.Response(200, json={"choices": [{"message": {"content": "  Hello there!  "}}]})
    )

    reply = await ai_messages.create_chat_completion("Say hi", 0.1, 50, response_format={"type": "json_object"})

    assert reply == "Hello there!"
    assert calls[0].url.path == "/v1/chat/completions"
    assert calls[0].headers["Authorization"] == "Bearer sk-test"
    sent = json.loads(calls[0].read())
    assert sent["response_format"] == {"type": "json_object"}
    assert sent["max_tokens"] == 50


@pytest.mark.parametrize(
    "reply",
    [
        {"status_code": 429, "json": {"error": {"message": "rate limited"}}},
        {"status_code": 200, "json": {"choices": []}},
        {"status_code": 200, "json": {"choices": [{"message": {"content": ""}}]}},
    ],
)
async def test_chat_completion_errors(openai_api, reply):
    _, replies = openai_api
    replies.append(ai_messages.httpx.Response(**reply))

    with pytest.raises(ai_messages.AIResponseError):
        await ai_messages.create_chat_completion("Say hi", 0.3, 50)
