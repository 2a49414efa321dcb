"""
E2E: Client booking flow.

Tests the path from photo submission to broadcast:
- Job creation prices from local cost factors and stores a draft
- Missing cost factors and bad input are rejected
- Booking broadcasts time-boxed offers only to eligible contractors
- Offer alerts go out by email (and SMS where a phone is on file)
- Jobs are only visible to the people involved
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from tests.e2e.conftest import (
    API,
    CLIENT_ID,
    FAUCET_JOB,
    OTHER_CLIENT_ID,
    PRO_A_ID,
    PRO_A_USER_ID,
    PRO_B_ID,
    PRO_FAR_USER_ID,
    auth_headers,
    create_booked_job,
    create_job,
)
from prereno.models import AuditLog, JobOffer, OfferKind

pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Job creation
# ---------------------------------------------------------------------------


class TestCreateJob:

    async def test_create_job_prices_and_stores_draft(self, client: AsyncClient):
        resp = await client.post(
            f"{API}/jobs", json=FAUCET_JOB, headers=auth_headers(CLIENT_ID)
        )
        assert resp.status_code == 201
        body = resp.json()
        job = body["job"]

        assert job["status"] == "draft"
        assert job["client_id"] == str(CLIENT_ID)
        assert job["client_price_cents"] == 22800
        assert job["contractor_net_cents"] == 18240
        assert job["platform_fee_cents"] == 4560
        assert job["condition_tags"] == ["faucet_leak"]
        assert "Address: faucet leak" in job["scope_md"]

        assert body["estimate_min_cents"] == 20520
        assert body["estimate_max_cents"] == 25080
        assert body["tags"] == ["faucet_leak"]
        assert body["confidence"] == pytest.approx(0.9)

    async def test_rush_job_priced_higher(self, client: AsyncClient):
        job = await create_job(client, rush=True)
        assert job["rush_flag"] is True
        assert job["contractor_net_cents"] == 27360
        assert job["client_price_cents"] == 34200

    async def test_unpriced_area_returns_503(self, client: AsyncClient):
        resp = await client.post(
            f"{API}/jobs",
            json={**FAUCET_JOB, "zip": "V6B 1A1"},
            headers=auth_headers(CLIENT_ID),
        )
        assert resp.status_code == 503

    async def test_unknown_category_rejected(self, client: AsyncClient):
        resp = await client.post(
            f"{API}/jobs",
            json={**FAUCET_JOB, "category": "pool"},
            headers=auth_headers(CLIENT_ID),
        )
        assert resp.status_code == 422

    async def test_requires_authentication(self, client: AsyncClient):
        resp = await client.post(f"{API}/jobs", json=FAUCET_JOB)
        assert resp.status_code == 401

    async def test_contractors_cannot_submit_jobs(self, client: AsyncClient):
        resp = await client.post(
            f"{API}/jobs", json=FAUCET_JOB, headers=auth_headers(PRO_A_USER_ID)
        )
        assert resp.status_code == 403

    async def test_creation_is_audited(self, client: AsyncClient, seeded_db):
        job = await create_job(client)
        result = await seeded_db.execute(
            select(AuditLog).where(AuditLog.entity_id == uuid.UUID(job["id"]))
        )
        actions = [row.action for row in result.scalars().all()]
        assert "job_created" in actions


# ---------------------------------------------------------------------------
# Booking and broadcast
# ---------------------------------------------------------------------------


class TestBookJob:

    async def test_book_broadcasts_to_eligible_contractors(
        self, client: AsyncClient, seeded_db, mock_email
    ):
        job = await create_job(client)
        resp = await client.post(
            f"{API}/jobs/{job['id']}/book", headers=auth_headers(CLIENT_ID)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["job"]["status"] == "awaiting_accept"
        assert body["offers_sent"] == 2
        assert body["contractors_notified"] == 2
        assert body["notification_failures"] == 0

        result = await seeded_db.execute(
            select(JobOffer).where(JobOffer.job_id == uuid.UUID(job["id"]))
        )
        offers = result.scalars().all()
        assert {o.contractor_id for o in offers} == {PRO_A_ID, PRO_B_ID}
        assert all(o.kind == OfferKind.BROADCAST for o in offers)

        assert mock_email.await_count == 2

    async def test_offer_sms_only_with_phone(self, client: AsyncClient, mock_sms):
        await create_booked_job(client)
        assert mock_sms.await_count == 1
        assert mock_sms.await_args.args[0] == "+14165550002"

    async def test_notification_failure_does_not_block_booking(
        self, client: AsyncClient, mock_email
    ):
        from prereno.integrations.resend import EmailError

        mock_email.side_effect = EmailError("Resend down")
        job = await create_job(client)
        resp = await client.post(
            f"{API}/jobs/{job['id']}/book", headers=auth_headers(CLIENT_ID)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["offers_sent"] == 2
        assert body["notification_failures"] == 2

    async def test_cannot_book_twice(self, client: AsyncClient):
        job = await create_booked_job(client)
        resp = await client.post(
            f"{API}/jobs/{job['id']}/book", headers=auth_headers(CLIENT_ID)
        )
        assert resp.status_code == 422

    async def test_other_clients_cannot_book(self, client: AsyncClient):
        job = await create_job(client)
        resp = await client.post(
            f"{API}/jobs/{job['id']}/book", headers=auth_headers(OTHER_CLIENT_ID)
        )
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


class TestJobVisibility:

    async def test_client_lists_own_jobs(self, client: AsyncClient):
        job = await create_job(client)
        resp = await client.get(f"{API}/jobs", headers=auth_headers(CLIENT_ID))
        assert resp.status_code == 200
        assert [j["id"] for j in resp.json()] == [job["id"]]

        resp = await client.get(f"{API}/jobs", headers=auth_headers(OTHER_CLIENT_ID))
        assert resp.json() == []

    async def test_offered_contractor_can_view_job(self, client: AsyncClient):
        job = await create_booked_job(client)
        resp = await client.get(
            f"{API}/jobs/{job['id']}", headers=auth_headers(PRO_A_USER_ID)
        )
        assert resp.status_code == 200

    async def test_ineligible_contractor_cannot_view_job(self, client: AsyncClient):
        job = await create_booked_job(client)
        resp = await client.get(
            f"{API}/jobs/{job['id']}", headers=auth_headers(PRO_FAR_USER_ID)
        )
        assert resp.status_code == 404

    async def test_offer_trail_visible_to_owner(self, client: AsyncClient):
        job = await create_booked_job(client)
        resp = await client.get(
            f"{API}/jobs/{job['id']}/offers", headers=auth_headers(CLIENT_ID)
        )
        assert resp.status_code == 200
        assert len(resp.json()) == 2
