import os
from collections import namedtuple

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["AUTOMATION_CRON_SECRET"] = "cron-secret"
os.environ["EMAIL_WEBHOOK_SECRET"] = "email-secret"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
for key in (
    "OPENAI_API_KEY",
    "RESEND_API_KEY",
    "AUTH_JWT_AUDIENCE",
    "DEMO_MODE",
    "REDIS_URL",
    "SQUARE_ENCRYPTION_KEY",
    "SQUARE_ENVIRONMENT",
):
    os.environ.pop(key, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fieldops.database import Base, get_db  # noqa: E402
from fieldops.main import app  # noqa: E402
from fieldops.models import Account, AccountMembership, BusinessSettings, Client, User  # noqa: E402
from fieldops.models_job import Job, JobLineItem  # noqa: E402
from fieldops.services.business_settings import DEFAULT_AUTOMATION_SETTINGS  # noqa: E402
from fieldops.services.job_automation import handle_line_item_change  # noqa: E402
from fieldops.shared.dates import utcnow  # noqa: E402

TEST_JWT_SECRET = "test-secret"

Member = namedtuple("Member", ["user", "headers"])


def make_token(auth_uid: str, email: str = None) -> str:
    return jwt.encode({"sub": auth_uid, "email": email}, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(auth_uid: str, email: str = None) -> dict:
    return {"Authorization": f"Bearer {make_token(auth_uid, email)}"}


def create_user(db, auth_uid: str, email: str, full_name: str = None) -> User:
    user = User(auth_uid=auth_uid, email=email, full_name=full_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_member(db, account: Account, role: str, name: str, hourly_rate: float = None) -> Member:
    user = create_user(db, f"{name}-uid", f"{name}@example.com", name.title())
    db.add(AccountMembership(account_id=account.id, user_id=user.id, role=role, hourly_rate=hourly_rate))
    db.commit()
    return Member(user, auth_headers(user.auth_uid, user.email))


def create_account(db, name: str = "Acme Field Services") -> Account:
    account = Account(name=name)
    db.add(account)
    db.flush()
    db.add(
        BusinessSettings(
            account_id=account.id,
            business_name=name,
            reply_to_email="office@acme.example.com",
            default_tax_rate=0.08,
            invoice_due_days=30,
            ai_automation=dict(DEFAULT_AUTOMATION_SETTINGS),
        )
    )
    db.commit()
    db.refresh(account)
    return account


def create_client(db, account: Account, first_name: str = "Jane", **kwargs) -> Client:
    values = {"last_name": "Doe", "email": f"{first_name.lower()}@example.com", "phone": "+15555550100"}
    values.update(kwargs)
    client = Client(account_id=account.id, first_name=first_name, status="active", source="manual", **values)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def create_job(
    db,
    account: Account,
    client: Client,
    status: str = "draft",
    line_items=(("Lawn service", 1, 100.0),),
    tax_rate: float = 0.08,
    number: int = None,
    **kwargs,
) -> Job:
    if number is None:
        number = db.query(Job).filter(Job.account_id == account.id).count() + 1
    job = Job(
        account_id=account.id,
        client_id=client.id,
        job_number=f"JOB-{number:05d}",
        title=kwargs.pop("title", "Spring cleanup"),
        status=status,
        tax_rate=tax_rate,
        **kwargs,
    )
    db.add(job)
    db.flush()
    for description, quantity, unit_price in line_items:
        job.line_items.append(JobLineItem(description=description, quantity=quantity, unit_price=unit_price))
    if status == "completed":
        job.completed_at = utcnow()
        job.ready_for_invoice = True
    db.commit()
    handle_line_item_change(db, job)
    db.refresh(job)
    return job


def enable_automations(db, account: Account, **overrides) -> None:
    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == account.id).first()
    values = {key: True for key in DEFAULT_AUTOMATION_SETTINGS}
    values.update(overrides)
    settings.ai_automation = values
    db.commit()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def account(db):
    return create_account(db)


@pytest.fixture
def other_account(db):
    return create_account(db, "Other Co")


@pytest.fixture
def owner(db, account):
    return add_member(db, account, "OWNER", "owner")


@pytest.fixture
def admin(db, account):
    return add_member(db, account, "ADMIN", "admin")


@pytest.fixture
def tech(db, account):
    return add_member(db, account, "TECH", "tech", hourly_rate=30.0)


@pytest.fixture
def customer_client(db, account):
    return create_client(db, account)


@pytest.fixture
def customer(db, customer_client):
    """Portal login linked to the customer's client record"""
    user = create_user(db, "customer-uid", "portal@example.com", "Jane Doe")
    customer_client.user_id = user.id
    db.commit()
    return Member(user, auth_headers(user.auth_uid, user.email))
