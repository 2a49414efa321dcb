"""
Unit tests for the outbound integrations: photo analysis, SMS and email.

HTTP integrations run against ``httpx.MockTransport``; the Resend SDK is
patched at the module level.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from prereno.core.config import settings
from prereno.integrations.resend import EmailError, emailService
from prereno.integrations.twilio import SmsError, smsService
from prereno.integrations.vision import (
    StaticConditionDetector,
    VisionConditionDetector,
    VisionError,
    normalize_tag,
)
from prereno.integrations.vision import conditionDetector

pytestmark = pytest.mark.asyncio


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Vision
# ---------------------------------------------------------------------------


class TestVisionConditionDetector:

    @pytest.fixture(autouse=True)
    def _no_backoff(self, monkeypatch):
        monkeypatch.setattr(conditionDetector, "RETRY_BASE_DELAY_SECONDS", 0)

    async def test_parses_and_normalizes_tags(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(
                200, json={"tags": ["Faucet Leak", "faucet_leak", "Water-Damage"], "confidence": 0.91}
            )

        detector = VisionConditionDetector(
            api_url="https://vision.test/analyze", api_key="k", client=_client(handler)
        )
        analysis = await detector.analyze(["job-photos/a.jpg"])

        assert analysis.tags == ["faucet_leak", "water_damage"]
        assert analysis.confidence == pytest.approx(0.91)
        assert seen["body"] == {"photos": ["job-photos/a.jpg"]}
        assert seen["auth"] == "Bearer k"

    async def test_no_photos_skips_the_call(self):
        def handler(request):
            raise AssertionError("should not be called")

        detector = VisionConditionDetector(api_url="https://vision.test", client=_client(handler))
        analysis = await detector.analyze([])
        assert analysis.tags == []

    async def test_retries_transient_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"tags": ["faucet_leak"], "confidence": 0.5})

        detector = VisionConditionDetector(api_url="https://vision.test", client=_client(handler))
        analysis = await detector.analyze(["a.jpg"])

        assert len(calls) == 3
        assert analysis.tags == ["faucet_leak"]

    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        detector = VisionConditionDetector(api_url="https://vision.test", client=_client(handler))
        with pytest.raises(VisionError):
            await detector.analyze(["a.jpg"])
        assert len(calls) == conditionDetector.MAX_RETRIES

    async def test_client_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "bad photo"})

        detector = VisionConditionDetector(api_url="https://vision.test", client=_client(handler))
        with pytest.raises(VisionError):
            await detector.analyze(["a.jpg"])
        assert len(calls) == 1

    async def test_static_detector(self):
        detector = StaticConditionDetector(["faucet_leak"], confidence=0.8)
        analysis = await detector.analyze(["anything.jpg"])
        assert analysis.tags == ["faucet_leak"]
        assert analysis.confidence == 0.8

    async def test_normalize_tag(self):
        assert normalize_tag("  Loose Outlet ") == "loose_outlet"


# ---------------------------------------------------------------------------
# Twilio SMS
# ---------------------------------------------------------------------------


class TestSendSms:

    @pytest.fixture(autouse=True)
    def _twilio_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
        monkeypatch.setattr(settings, "twilio_auth_token", "secret")
        monkeypatch.setattr(settings, "twilio_messaging_service_sid", "MG456")

    async def test_posts_to_messages_endpoint(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["form"] = dict(httpx.QueryParams(request.content.decode()))
            return httpx.Response(201, json={"sid": "SM789"})

        result = await smsService.send_sms("+14165552222", "New job", client=_client(handler))

        assert result.sid == "SM789"
        assert seen["url"].endswith("/Accounts/AC123/Messages.json")
        assert seen["form"]["To"] == "+14165552222"
        assert seen["form"]["MessagingServiceSid"] == "MG456"

    async def test_rejects_non_e164_numbers(self):
        with pytest.raises(SmsError, match="E.164"):
            await smsService.send_sms("4165552222", "hi")

    async def test_twilio_error_surfaces_code(self):
        def handler(request):
            return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' number"})

        with pytest.raises(SmsError) as exc_info:
            await smsService.send_sms("+10000000000", "hi", client=_client(handler))
        assert exc_info.value.error_code == 21211

    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "twilio_account_sid", "")
        assert smsService.is_configured() is False
        with pytest.raises(SmsError, match="not configured"):
            await smsService.send_sms("+14165552222", "hi")


# ---------------------------------------------------------------------------
# Resend email
# ---------------------------------------------------------------------------


class TestSendEmail:

    async def test_sends_through_resend(self, monkeypatch):
        monkeypatch.setattr(settings, "resend_api_key", "re_test")
        with patch.object(emailService.resend, "Emails") as emails:
            emails.send = MagicMock(return_value={"id": "email_1"})

            result = await emailService.send_email("a@example.com", "Hi", "<p>Hi</p>")

        assert result.id == "email_1"
        params = emails.send.call_args.args[0]
        assert params["to"] == ["a@example.com"]
        assert params["from"] == settings.email_from_address

    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "resend_api_key", "")
        with pytest.raises(EmailError, match="not configured"):
            await emailService.send_email("a@example.com", "Hi", "<p>Hi</p>")

    async def test_sdk_failure_wrapped(self, monkeypatch):
        monkeypatch.setattr(settings, "resend_api_key", "re_test")
        with patch.object(emailService.resend, "Emails") as emails:
            emails.send = MagicMock(side_effect=RuntimeError("422 invalid from"))
            with pytest.raises(EmailError, match="invalid from"):
                await emailService.send_email("a@example.com", "Hi", "<p>Hi</p>")
