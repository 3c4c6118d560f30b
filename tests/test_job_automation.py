from conftest import create_client, create_job

from fieldops.models import Activity, BusinessSettings
from fieldops.models_invoice import Invoice
from fieldops.models_job import Job, JobNote
from fieldops.services.job_automation import (
    calculate_totals,
    convert_quote_to_scheduled,
    determine_payment_status,
    generate_invoice_for_job,
    get_job_automation_suggestions,
    handle_job_status_change,
    next_invoice_number,
)
from fieldops.services.status_automation import (
    get_allowed_transitions,
    get_next_required_action,
    validate_status_transition,
)


def test_determine_payment_status():
    assert determine_payment_status(100, 0) == "unpaid"
    assert determine_payment_status(100, None) == "unpaid"
    assert determine_payment_status(100, 40) == "partial"
    assert determine_payment_status(100, 100) == "paid"
    assert determine_payment_status(100, 120) == "paid"


def test_calculate_totals_rounds_to_cents():
    totals = calculate_totals([100, 50.5], 0.08)
    assert totals == {"subtotal": 150.5, "tax_amount": 12.04, "total_amount": 162.54}


def test_calculate_totals_without_tax():
    assert calculate_totals([], None) == {"subtotal": 0, "tax_amount": 0, "total_amount": 0}


def test_job_totals_follow_line_items(db, account, customer_client):
    job = create_job(db, account, customer_client, line_items=[("Mulch", 3, 10.0), ("Labor", 2, 45.0)])
    assert job.subtotal == 120.0
    assert job.tax_amount == 9.6
    assert job.total_amount == 129.6
    assert job.payment_status == "unpaid"
    assert [item.total for item in job.line_items] == [30.0, 90.0]


def test_status_transitions():
    assert validate_status_transition("draft", "quote")
    assert validate_status_transition("scheduled", "in_progress")
    assert validate_status_transition("completed", "invoiced")
    assert not validate_status_transition("draft", "completed")
    assert not validate_status_transition("scheduled", "scheduled")
    assert not validate_status_transition("invoiced", "cancelled")
    assert not validate_status_transition("draft", "archived")
    assert get_allowed_transitions("in_progress") == ["completed"]
    assert get_allowed_transitions("cancelled") == []


def test_next_required_action():
    assert get_next_required_action(Job(status="scheduled")) == "Set a service date"
    assert get_next_required_action(Job(status="completed")) == "Create an invoice for this job"
    assert get_next_required_action(Job(status="invoiced", payment_status="partial")) == "Collect payment"
    assert get_next_required_action(Job(status="invoiced", payment_status="paid")) is None


def test_suggestions():
    assert get_job_automation_suggestions(Job(status="quote")) == ["Convert this quote to a scheduled job"]
    assert get_job_automation_suggestions(Job(status="completed")) == ["Generate invoice for this completed job"]
    assert get_job_automation_suggestions(Job(status="invoiced", payment_status="unpaid")) == [
        "Record payment when client pays"
    ]

    partial = Job(status="invoiced", payment_status="partial", total_amount=200, amount_paid=50)
    assert get_job_automation_suggestions(partial) == ["Follow up on remaining balance: $150.00"]


def test_convert_quote_to_scheduled(db, account, customer_client):
    draft = create_job(db, account, customer_client, status="draft")
    result = convert_quote_to_scheduled(db, draft)
    assert not result.success
    assert "Only quotes" in result.errors[0]

    quote = create_job(db, account, customer_client, status="quote")
    result = convert_quote_to_scheduled(db, quote, scheduled_time="09:00")
    assert result.success
    assert quote.status == "scheduled"
    assert quote.scheduled_time == "09:00"
    note = db.query(JobNote).filter(JobNote.job_id == quote.id).one()
    assert note.note_type == "status_change"
    assert note.note.startswith("Status changed from quote to scheduled")


def test_generate_invoice_requires_completed_job(db, account, customer_client):
    job = create_job(db, account, customer_client, status="in_progress")
    result = generate_invoice_for_job(db, job)
    assert not result.success
    assert result.invoice is None
    assert db.query(Invoice).count() == 0


def test_generate_invoice_for_completed_job(db, account, customer_client):
    job = create_job(db, account, customer_client, status="completed", line_items=[("Gutter cleaning", 2, 75.0)])

    result = generate_invoice_for_job(db, job)

    assert result.success
    invoice = result.invoice
    assert invoice.invoice_number == "INV-0001"
    assert invoice.status == "draft"
    assert invoice.total_amount == 162.0
    assert invoice.line_items[0]["total"] == 150.0
    assert (invoice.due_date - invoice.issue_date).days == 30

    db.refresh(job)
    assert job.status == "invoiced"
    assert not job.ready_for_invoice


def test_generate_invoice_for_paid_job_is_paid(db, account, customer_client):
    job = create_job(db, account, customer_client, status="completed")
    job.amount_paid = job.total_amount
    db.commit()

    result = generate_invoice_for_job(db, job)
    assert result.invoice.status == "paid"
    assert result.invoice.paid_at is not None


def test_generate_invoice_for_partly_paid_job(db, account, customer_client):
    job = create_job(db, account, customer_client, status="completed")
    job.amount_paid = 50
    db.commit()

    invoice = generate_invoice_for_job(db, job).invoice

    assert invoice.status == "partial"
    assert invoice.amount_paid == 50.0
    assert [payment.amount for payment in invoice.payments] == [50.0]
    assert invoice.balance_due == 58.0


def test_generate_invoice_twice_is_rejected(db, account, customer_client):
    job = create_job(db, account, customer_client, status="completed")
    assert generate_invoice_for_job(db, job).success

    job.status = "completed"
    db.commit()
    result = generate_invoice_for_job(db, job)
    assert not result.success
    assert "already exists" in result.errors[0]
    assert db.query(Invoice).filter(Invoice.job_id == job.id).count() == 1


def test_invoice_numbers_are_per_account(db, account, other_account):
    first = create_job(db, account, create_client(db, account), status="completed")
    second = create_job(db, account, create_client(db, account, "John"), status="completed")
    generate_invoice_for_job(db, first)
    generate_invoice_for_job(db, second)

    assert next_invoice_number(db, account.id) == "INV-0003"
    assert next_invoice_number(db, other_account.id) == "INV-0001"


def test_completion_creates_follow_up_tasks(db, account, customer_client):
    job = create_job(db, account, customer_client, status="completed")

    result = handle_job_status_change(db, job, "in_progress", "completed")

    assert result.success
    assert result.invoice is None
    activities = db.query(Activity).filter(Activity.job_id == job.id).all()
    assert sorted(a.activity_type for a in activities) == [
        "follow_up_call",
        "maintenance_reminder",
        "satisfaction_survey",
    ]
    assert all(a.status == "pending" for a in activities)


def test_completion_auto_invoices_when_enabled(db, account, customer_client):
    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == account.id).one()
    settings.auto_invoice_on_completion = True
    db.commit()
    job = create_job(db, account, customer_client, status="completed")

    result = handle_job_status_change(db, job, "in_progress", "completed")

    assert result.invoice is not None
    assert job.status == "invoiced"


def test_status_change_without_completion_does_nothing(db, account, customer_client):
    job = create_job(db, account, customer_client, status="scheduled")
    result = handle_job_status_change(db, job, "draft", "scheduled")
    assert result.actions == []
    assert db.query(Activity).count() == 0
