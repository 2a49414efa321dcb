"""
E2E test fixtures for the PreReno backend.

Provides:
- An in-process FastAPI test app with all routes registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- An async SQLite database (in-memory, one per test) for isolation
- Pre-populated seed data: client, landlord, admin, contractors, cost factors
- Helper fixtures for bearer headers, offer links and jobs in various states

External services (Stripe, Resend, Twilio, vision) are mocked at the
integration level so the full route -> service -> DB flow is exercised.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from prereno.models import (
    Base,
    Contractor,
    CostFactor,
    JobCategory,
    JobOffer,
    Profile,
    UserRole,
)

# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CLIENT_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
LANDLORD_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
ADMIN_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")
OTHER_CLIENT_ID = uuid.UUID("eeeeeeee-eeee-eeee-eeee-eeeeeeeeeeee")

PRO_A_USER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
PRO_B_USER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
PRO_FAR_USER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
PRO_NEW_USER_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")

PRO_A_ID = uuid.UUID("55555555-5555-5555-5555-555555555555")
PRO_B_ID = uuid.UUID("66666666-6666-6666-6666-666666666666")
PRO_FAR_ID = uuid.UUID("77777777-7777-7777-7777-777777777777")
PRO_NEW_ID = uuid.UUID("88888888-8888-8888-8888-888888888888")

JOB_ZIP = "M5V 2T6"
API = "/api/v1"

# Scenario from the pricing rules: 8000/h labour, 1.3 materials,
# 15000 minimum, one faucet_leak tag -> net 18240, client 22800.
FAUCET_JOB = {
    "title": "Leaky kitchen faucet",
    "description": "Drips constantly, worse when the hot tap is on.",
    "category": "plumbing",
    "city": "Toronto",
    "zip": JOB_ZIP,
    "photos": ["job-photos/jane/faucet-1.jpg"],
}


# ---------------------------------------------------------------------------
# Async engine + session (in-memory SQLite)
# ---------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def _test_engine():
    """A fresh in-memory database per test; routes commit, so no savepoints."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite does not enforce foreign keys by default
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

async def _seed_data(db: AsyncSession) -> None:
    """Insert minimum seed data for E2E tests."""
    db.add_all([
        Profile(
            id=CLIENT_ID,
            email="jane@test.prereno.app",
            first_name="Jane",
            last_name="Doe",
            phone="+14165550001",
            role=UserRole.CLIENT,
        ),
        Profile(
            id=OTHER_CLIENT_ID,
            email="sam@test.prereno.app",
            first_name="Sam",
            last_name="Lee",
            role=UserRole.CLIENT,
        ),
        Profile(
            id=LANDLORD_ID,
            email="landlord@test.prereno.app",
            first_name="Lara",
            last_name="Lord",
            role=UserRole.LANDLORD,
        ),
        Profile(
            id=ADMIN_ID,
            email="admin@test.prereno.app",
            first_name="Ada",
            last_name="Admin",
            role=UserRole.ADMIN,
        ),
        Profile(
            id=PRO_A_USER_ID,
            email="pipepros@test.prereno.app",
            first_name="Mario",
            last_name="Rossi",
            phone="+14165550002",
            role=UserRole.CONTRACTOR,
        ),
        Profile(
            id=PRO_B_USER_ID,
            email="drainking@test.prereno.app",
            first_name="Luigi",
            last_name="Verdi",
            role=UserRole.CONTRACTOR,
        ),
        Profile(
            id=PRO_FAR_USER_ID,
            email="halifax@test.prereno.app",
            first_name="Nora",
            last_name="Scott",
            role=UserRole.CONTRACTOR,
        ),
        Profile(
            id=PRO_NEW_USER_ID,
            email="newbie@test.prereno.app",
            first_name="Ned",
            last_name="Novak",
            role=UserRole.CONTRACTOR,
        ),
    ])
    await db.flush()

    db.add_all([
        Contractor(
            id=PRO_A_ID,
            profile_id=PRO_A_USER_ID,
            company="Pipe Pros Inc.",
            license_state="M5",
            verified=True,
            stripe_account_id="acct_test_pipepros",
        ),
        Contractor(
            id=PRO_B_ID,
            profile_id=PRO_B_USER_ID,
            company="Drain King",
            license_state="M5",
            verified=True,
        ),
        Contractor(
            id=PRO_FAR_ID,
            profile_id=PRO_FAR_USER_ID,
            company="Harbour Plumbing",
            license_state="B3",
            verified=True,
        ),
        Contractor(
            id=PRO_NEW_ID,
            profile_id=PRO_NEW_USER_ID,
            company="Novak Handyman",
            license_state="M5",
            verified=False,
        ),
        CostFactor(
            location_key=JOB_ZIP,
            category=JobCategory.PLUMBING,
            labor_rate_cents_per_hour=8000,
            material_multiplier=Decimal("1.3"),
            small_job_min_cents=15000,
        ),
    ])
    await db.commit()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """A database session with seed data already inserted."""
    await _seed_data(db_session)
    return db_session


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

def _create_test_app(db_session_override: AsyncSession):
    """Build a FastAPI app with all routes registered, the DB dependency
    overridden to use the test session and a fixed photo analysis."""
    from fastapi import FastAPI

    from prereno.api.deps import get_condition_detector, get_db
    from prereno.api.routes.admin import router as admin_router
    from prereno.api.routes.approvals import router as approvals_router
    from prereno.api.routes.jobs import router as jobs_router
    from prereno.api.routes.offers import router as offers_router
    from prereno.api.routes.payments import router as payments_router
    from prereno.api.routes.pricing import router as pricing_router
    from prereno.api.routes.webhooks import router as webhooks_router
    from prereno.integrations.vision import StaticConditionDetector

    app = FastAPI(title="PreReno Test")

    async def _override_get_db():
        try:
            yield db_session_override
            await db_session_override.commit()
        except Exception:
            await db_session_override.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_condition_detector] = lambda: StaticConditionDetector(
        ["faucet_leak"], confidence=0.9
    )

    for router in (
        jobs_router,
        offers_router,
        pricing_router,
        payments_router,
        webhooks_router,
        approvals_router,
        admin_router,
    ):
        app.include_router(router, prefix=API)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


@pytest_asyncio.fixture
async def client(seeded_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    app = _create_test_app(seeded_db)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

def auth_headers(profile_id: uuid.UUID) -> dict[str, str]:
    from prereno.services.auth_service import create_access_token

    token, _ = create_access_token(profile_id)
    return {"Authorization": f"Bearer {token}"}


async def offer_token(db: AsyncSession, job_id: uuid.UUID, contractor_id: uuid.UUID) -> str:
    """The magic-link token a contractor would have received by email."""
    from prereno.services.auth_service import issue_offer_token

    result = await db.execute(
        select(JobOffer).where(
            JobOffer.job_id == job_id,
            JobOffer.contractor_id == contractor_id,
        )
    )
    offer = result.scalar_one()
    return issue_offer_token(job_id, contractor_id, offer.expires_at)


async def create_job(client: AsyncClient, **overrides) -> dict:
    response = await client.post(
        f"{API}/jobs", json={**FAUCET_JOB, **overrides}, headers=auth_headers(CLIENT_ID)
    )
    assert response.status_code == 201, response.text
    return response.json()["job"]


async def create_booked_job(client: AsyncClient, **overrides) -> dict:
    job = await create_job(client, **overrides)
    response = await client.post(
        f"{API}/jobs/{job['id']}/book", headers=auth_headers(CLIENT_ID)
    )
    assert response.status_code == 200, response.text
    return response.json()["job"]


async def create_scheduled_job(client: AsyncClient, db: AsyncSession) -> dict:
    """Booked, accepted by contractor A and paid."""
    job = await create_booked_job(client)
    token = await offer_token(db, uuid.UUID(job["id"]), PRO_A_ID)
    response = await client.post(f"{API}/offers/{token}/accept")
    assert response.status_code == 200, response.text

    response = await client.post(
        f"{API}/payments/{job['id']}/confirm", headers=auth_headers(CLIENT_ID)
    )
    assert response.status_code == 200, response.text
    return job


# ---------------------------------------------------------------------------
# Stripe mock (used by settlement)
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def mock_stripe():
    """Mock all Stripe SDK calls used by the payment service."""
    with patch("prereno.integrations.stripe.paymentService.stripe") as mock_stripe_mod:
        # PaymentIntent.create
        mock_intent = MagicMock()
        mock_intent.id = "pi_test_123456"
        mock_intent.client_secret = "pi_test_123456_secret_abc"
        mock_intent.status = "requires_payment_method"
        mock_intent.amount = 22800
        mock_intent.currency = "cad"
        mock_intent.payment_method = None
        mock_stripe_mod.PaymentIntent.create.return_value = mock_intent

        # PaymentIntent.confirm
        confirmed_intent = MagicMock()
        confirmed_intent.id = "pi_test_123456"
        confirmed_intent.status = "succeeded"
        confirmed_intent.amount = 22800
        confirmed_intent.currency = "cad"
        confirmed_intent.payment_method = "pm_test_card"
        mock_stripe_mod.PaymentIntent.confirm.return_value = confirmed_intent

        # PaymentIntent.cancel
        cancelled_intent = MagicMock()
        cancelled_intent.id = "pi_test_123456"
        cancelled_intent.status = "canceled"
        mock_stripe_mod.PaymentIntent.cancel.return_value = cancelled_intent

        # Refund.create echoes the requested amount
        def _refund(**params):
            refund = MagicMock()
            refund.id = "re_test_789"
            refund.status = "succeeded"
            refund.amount = params.get("amount", 22800)
            return refund

        mock_stripe_mod.Refund.create.side_effect = _refund

        # StripeError for reference
        mock_stripe_mod.StripeError = Exception

        yield mock_stripe_mod


@pytest.fixture(autouse=True)
def mock_stripe_payout():
    """Mock Connect transfers."""
    with patch("prereno.integrations.stripe.payoutService.stripe") as mock_mod:
        mock_transfer = MagicMock()
        mock_transfer.id = "tr_test_001"
        mock_transfer.amount = 18240
        mock_mod.Transfer.create.return_value = mock_transfer
        mock_mod.StripeError = Exception
        yield mock_mod


# ---------------------------------------------------------------------------
# Messaging mocks
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def mock_email():
    with patch(
        "prereno.integrations.resend.emailService.send_email",
        new_callable=AsyncMock,
    ) as mock:
        yield mock


@pytest.fixture(autouse=True)
def mock_sms():
    with patch(
        "prereno.integrations.twilio.smsService.send_sms",
        new_callable=AsyncMock,
    ) as mock:
        yield mock
