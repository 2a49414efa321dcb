"""
Photo condition detector client
===============================

Calls the hosted vision endpoint that turns job photos into condition tags::

    POST {VISION_API_URL}
    Authorization: Bearer {VISION_API_KEY}
    {"photos": ["job-photos/<profile>/<file>.jpg", ...]}

    200 {"tags": ["faucet_leak", ...], "confidence": 0.91}

Analysis is an idempotent read, so transient failures (connect errors,
timeouts, HTTP 429/5xx) are retried up to ``MAX_RETRIES`` times with
exponential backoff. Anything else fails immediately with ``VisionError``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional, Sequence

import httpx

from prereno.core.config import settings
from prereno.services.ports import ConditionAnalysis

logger = logging.getLogger(__name__)

MAX_RETRIES: int = 3
RETRY_BASE_DELAY_SECONDS: float = 0.5

_TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_TAG_PATTERN = re.compile(r"[^a-z0-9_]+")


class VisionError(Exception):
    """Raised when photo analysis fails permanently."""


def normalize_tag(tag: str) -> str:
    """``"Faucet Leak"`` -> ``"faucet_leak"``."""
    return _TAG_PATTERN.sub("_", tag.strip().lower()).strip("_")


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _TRANSIENT_STATUS_CODES
    return False


def _parse(payload: dict) -> ConditionAnalysis:
    raw_tags = payload.get("tags") or []
    tags = list(dict.fromkeys(t for t in (normalize_tag(str(tag)) for tag in raw_tags) if t))
    confidence = float(payload.get("confidence") or 0.0)
    return ConditionAnalysis(tags=tags, confidence=min(max(confidence, 0.0), 1.0))


class VisionConditionDetector:
    """``ConditionDetector`` backed by the hosted vision API."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_url = api_url or settings.vision_api_url
        self._api_key = api_key or settings.vision_api_key
        self._timeout = timeout or settings.vision_timeout_seconds
        self._client = client

    async def _post(self, photo_refs: Sequence[str]) -> dict:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        body = {"photos": list(photo_refs)}
        if self._client is not None:
            response = await self._client.post(
                self._api_url, json=body, headers=headers, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self._api_url, json=body, headers=headers, timeout=self._timeout
                )
        response.raise_for_status()
        return response.json()

    async def analyze(self, photo_refs: Sequence[str]) -> ConditionAnalysis:
        if not photo_refs:
            return ConditionAnalysis(tags=[], confidence=0.0)

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                payload = await self._post(photo_refs)
                analysis = _parse(payload)
                logger.info(
                    "Vision analysis: %d photos -> tags=%s (confidence=%.2f)",
                    len(photo_refs),
                    analysis.tags,
                    analysis.confidence,
                )
                return analysis
            except (httpx.HTTPError, ValueError) as exc:
                if _is_transient(exc) and attempt < MAX_RETRIES:
                    delay = RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1))
                    logger.warning(
                        "Transient vision error (attempt %d/%d), retrying in %.1fs: %s",
                        attempt,
                        MAX_RETRIES,
                        delay,
                        exc,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error("Vision analysis failed after %d attempts: %s", attempt, exc)
                raise VisionError(f"Photo analysis failed: {exc}") from exc

        raise VisionError(f"Photo analysis failed after {MAX_RETRIES} attempts")


class StaticConditionDetector:
    """Returns fixed tags. Used when no vision endpoint is configured."""

    def __init__(self, tags: Sequence[str] = (), confidence: float = 0.0) -> None:
        self._analysis = ConditionAnalysis(tags=list(tags), confidence=confidence)

    async def analyze(self, photo_refs: Sequence[str]) -> ConditionAnalysis:
        return self._analysis
