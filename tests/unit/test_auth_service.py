"""
Unit tests for access-token verification and offer magic links.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
import pytest

from prereno.core.config import settings
from prereno.models import Profile, UserRole
from prereno.services.auth_service import (
    InvalidOfferTokenError,
    create_access_token,
    decode_offer_token,
    decode_token,
    get_current_user,
    issue_offer_token,
)


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def profile() -> Profile:
    return Profile(
        id=uuid.uuid4(),
        email="jane@example.com",
        first_name="Jane",
        last_name="Doe",
        role=UserRole.CLIENT,
    )


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


class TestAccessTokens:

    def test_round_trip(self, profile):
        token, expires_at = create_access_token(profile.id)
        payload = decode_token(token)
        assert payload["sub"] == str(profile.id)
        assert payload["type"] == "access"
        assert expires_at > datetime.now(timezone.utc)

    @pytest.mark.asyncio
    async def test_get_current_user_resolves_profile(self, mock_db, profile):
        mock_db.execute.return_value = _result(profile)
        token, _ = create_access_token(profile.id)

        assert await get_current_user(mock_db, token) is profile

    @pytest.mark.asyncio
    async def test_unknown_profile_rejected(self, mock_db, profile):
        mock_db.execute.return_value = _result(None)
        token, _ = create_access_token(profile.id)

        with pytest.raises(ValueError, match="Profile not found"):
            await get_current_user(mock_db, token)

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, mock_db, profile):
        token = jwt.encode(
            {"sub": str(profile.id), "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(ValueError, match="expired"):
            await get_current_user(mock_db, token)

    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self, mock_db, profile):
        token = jwt.encode({"sub": str(profile.id)}, "not-the-secret", algorithm="HS256")
        with pytest.raises(ValueError, match="Invalid access token"):
            await get_current_user(mock_db, token)

    @pytest.mark.asyncio
    async def test_offer_token_is_not_an_access_token(self, mock_db):
        token = issue_offer_token(
            uuid.uuid4(), uuid.uuid4(), datetime.now(timezone.utc) + timedelta(minutes=15)
        )
        with pytest.raises(ValueError, match="Expected an access token"):
            await get_current_user(mock_db, token)
        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_subject_rejected(self, mock_db):
        token = jwt.encode(
            {"sub": "not-a-uuid"}, settings.jwt_secret, algorithm=settings.jwt_algorithm
        )
        with pytest.raises(ValueError, match="malformed subject"):
            await get_current_user(mock_db, token)


# ---------------------------------------------------------------------------
# Offer magic links
# ---------------------------------------------------------------------------


class TestOfferTokens:

    def test_round_trip(self):
        job_id, contractor_id = uuid.uuid4(), uuid.uuid4()
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=15)

        claims = decode_offer_token(issue_offer_token(job_id, contractor_id, expires_at))

        assert claims.job_id == job_id
        assert claims.contractor_id == contractor_id
        assert abs((claims.expires_at - expires_at).total_seconds()) < 1

    def test_expired_link_rejected_by_default(self):
        token = issue_offer_token(
            uuid.uuid4(), uuid.uuid4(), datetime.now(timezone.utc) - timedelta(seconds=5)
        )
        with pytest.raises(InvalidOfferTokenError, match="expired"):
            decode_offer_token(token)

    def test_expired_link_readable_without_exp_check(self):
        job_id = uuid.uuid4()
        token = issue_offer_token(
            job_id, uuid.uuid4(), datetime.now(timezone.utc) - timedelta(seconds=5)
        )
        assert decode_offer_token(token, verify_exp=False).job_id == job_id

    def test_tampered_link_rejected(self):
        token = issue_offer_token(
            uuid.uuid4(), uuid.uuid4(), datetime.now(timezone.utc) + timedelta(minutes=15)
        )
        with pytest.raises(InvalidOfferTokenError):
            decode_offer_token(token[:-2] + ("A" if token[-2] != "A" else "B") + token[-1])

    def test_access_token_is_not_an_offer_link(self, profile):
        token, _ = create_access_token(profile.id)
        with pytest.raises(InvalidOfferTokenError):
            decode_offer_token(token)
