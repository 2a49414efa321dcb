"""
Shared pytest fixtures for PreReno backend unit tests.

Provides a mock database session and sample domain objects that mirror
production ORM models without requiring a live database connection.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from prereno.models import (
    Contractor,
    Job,
    JobCategory,
    JobStatus,
    Profile,
    UserRole,
)


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Supports ``db.execute()``, ``db.get()``, ``db.add()``, ``db.flush()``
    and ``db.commit()`` out of the box. Individual tests configure
    ``mock_db.execute.return_value`` / ``mock_db.get.side_effect``.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_client() -> Profile:
    return Profile(
        id=uuid.uuid4(),
        email="jane@example.com",
        first_name="Jane",
        last_name="Doe",
        phone="+14165551111",
        role=UserRole.CLIENT,
    )


@pytest.fixture
def sample_contractor_profile() -> Profile:
    return Profile(
        id=uuid.uuid4(),
        email="pros@example.com",
        first_name="Mario",
        last_name="Rossi",
        phone="+14165552222",
        role=UserRole.CONTRACTOR,
    )


@pytest.fixture
def sample_contractor(sample_contractor_profile) -> Contractor:
    return Contractor(
        id=uuid.uuid4(),
        profile_id=sample_contractor_profile.id,
        company="Pipe Pros Inc.",
        license_state="M5",
        verified=True,
        stripe_account_id="acct_test_123",
    )


@pytest.fixture
def sample_job(sample_client) -> Job:
    """A freshly broadcast plumbing job priced at 22800 / 18240."""
    return Job(
        id=uuid.uuid4(),
        client_id=sample_client.id,
        title="Leaky kitchen faucet",
        category=JobCategory.PLUMBING,
        status=JobStatus.AWAITING_ACCEPT,
        city="Toronto",
        zip="M5V 2T6",
        photos_json=["job-photos/jane/faucet.jpg"],
        condition_tags_json=["faucet_leak"],
        scope_md="• Address: faucet leak\n• Shut off water supply",
        client_price_cents=22800,
        contractor_net_cents=18240,
        platform_fee_cents=4560,
        margin_pct=Decimal("0.20"),
        rush_flag=False,
        after_hours_flag=False,
        renter_flag=False,
    )
