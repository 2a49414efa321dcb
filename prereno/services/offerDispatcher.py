"""
Offer Dispatcher
================

Turns a booked job into a time-boxed negotiation among eligible
contractors and resolves it to exactly one winner:

- ``broadcast``: one ``broadcast`` offer per eligible contractor, each
  expiring ``offer_ttl`` from now, followed by a notification per offer.
- ``accept``: first writer wins. The job moves ``awaiting_accept ->
  accepted`` through ``JobStore.compare_and_set_status``; a write that
  matches zero rows means another contractor got there first.
- ``counter``: range-checked against the job's contractor net. Small
  counters are auto-approved and claim the job the same way ``accept``
  does; larger ones are parked as ``counter`` for manual approval.
- ``decline``: the contractor opts out; the job is untouched.

Every guard runs before any write, so a rejected action leaves no trace.
Offer expiry is lazy: an offer past ``expires_at`` is refused when used.
The claim write is never retried blindly; callers that want to retry must
call ``accept`` again, which re-reads the job and re-checks the guards.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Callable, Iterable, Optional

from prereno.core.config import settings
from prereno.models import Contractor, Job, JobOffer, JobStatus, OfferKind, utcnow
from prereno.services.jobStateManager import InvalidTransitionError
from prereno.services.ports import EligibilityPredicate, JobStore, Notifier, OfferStore
from prereno.services.pricingEngine import client_price_for
from prereno.services.refundCalculator import ensure_utc

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NegotiationPolicy:
    """Product thresholds for offers and counter-offers."""
    offer_ttl: timedelta = timedelta(minutes=15)
    counter_min_fraction: Decimal = Decimal("0.8")
    counter_max_fraction: Decimal = Decimal("1.2")
    auto_approve_fraction: Decimal = Decimal("1.1")
    schedule_lead: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls) -> "NegotiationPolicy":
        return cls(
            offer_ttl=timedelta(minutes=settings.offer_ttl_minutes),
            counter_min_fraction=settings.counter_min_fraction,
            counter_max_fraction=settings.counter_max_fraction,
            auto_approve_fraction=settings.counter_auto_approve_fraction,
            schedule_lead=timedelta(hours=settings.accept_schedule_lead_hours),
        )


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class JobNotFoundError(Exception):
    def __init__(self, job_id: uuid.UUID) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found.")


class AlreadyClaimedError(Exception):
    """Another contractor accepted first, or the job is no longer open."""

    def __init__(self, job_id: uuid.UUID) -> None:
        self.job_id = job_id
        super().__init__("Job is no longer available.")


class OutOfRangeError(Exception):
    """Counter-offer outside the acceptable band. Carries the bounds."""

    def __init__(self, min_cents: int, max_cents: int, requested_cents: int) -> None:
        self.min_cents = min_cents
        self.max_cents = max_cents
        self.requested_cents = requested_cents
        super().__init__(
            f"Counter offer {requested_cents} must be between "
            f"{min_cents} and {max_cents} cents."
        )


class OfferNotFoundError(Exception):
    def __init__(self, job_id: uuid.UUID, provider_id: uuid.UUID) -> None:
        self.job_id = job_id
        self.provider_id = provider_id
        super().__init__(f"No offer for contractor {provider_id} on job {job_id}.")


class OfferExpiredError(Exception):
    def __init__(
        self,
        job_id: uuid.UUID,
        provider_id: uuid.UUID,
        expires_at: Optional[datetime],
    ) -> None:
        self.job_id = job_id
        self.provider_id = provider_id
        self.expires_at = expires_at
        super().__init__(f"Offer on job {job_id} has expired.")


class OfferClosedError(Exception):
    """The contractor already accepted or declined this offer."""

    def __init__(self, job_id: uuid.UUID, provider_id: uuid.UUID, kind: OfferKind) -> None:
        self.job_id = job_id
        self.provider_id = provider_id
        self.kind = kind
        super().__init__(f"Offer on job {job_id} is already '{kind.value}'.")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BroadcastResult:
    offers: list[JobOffer]
    notified: int
    notification_failures: int


@dataclass(frozen=True)
class AcceptResult:
    job: Job
    offer: JobOffer
    expired_offers: int


@dataclass(frozen=True)
class CounterResult:
    offer: JobOffer
    auto_approved: bool
    provider_net_cents: int
    client_price_cents: int
    job: Optional[Job] = None
    expired_offers: int = 0

    @property
    def requires_manual_approval(self) -> bool:
        return not self.auto_approved


@dataclass(frozen=True)
class CounterBounds:
    min_cents: int
    max_cents: int
    auto_approve_max_cents: int


def _whole_cents(value: Decimal, rounding: str) -> int:
    return int(value.quantize(Decimal("1"), rounding=rounding))


def counter_bounds(provider_net_cents: int, policy: NegotiationPolicy) -> CounterBounds:
    """Whole-cent counters that fall inside the exact band.

    The minimum rounds up and the maximums round down, so a counter is in
    range exactly when it is in range against the unrounded products.
    """
    net = Decimal(provider_net_cents)
    return CounterBounds(
        min_cents=_whole_cents(net * policy.counter_min_fraction, ROUND_CEILING),
        max_cents=_whole_cents(net * policy.counter_max_fraction, ROUND_FLOOR),
        auto_approve_max_cents=_whole_cents(net * policy.auto_approve_fraction, ROUND_FLOOR),
    )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class OfferDispatcher:
    """Broadcasts offers and resolves contractor responses for one store."""

    def __init__(
        self,
        jobs: JobStore,
        offers: OfferStore,
        notifier: Optional[Notifier] = None,
        policy: Optional[NegotiationPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = jobs
        self._offers = offers
        self._notifier = notifier
        self._policy = policy or NegotiationPolicy()
        self._clock = clock

    @property
    def policy(self) -> NegotiationPolicy:
        return self._policy

    # -- broadcast ---------------------------------------------------------

    async def broadcast(
        self,
        job: Job,
        providers: Iterable[Contractor],
        ttl: Optional[timedelta] = None,
        is_eligible: Optional[EligibilityPredicate] = None,
    ) -> BroadcastResult:
        """Create one broadcast offer per eligible contractor and notify each.

        Contractors that already hold an offer on the job are skipped.
        Notification failures are logged and never undo the offers.
        """
        if job.status != JobStatus.AWAITING_ACCEPT:
            raise InvalidTransitionError(
                f"Offers can only be broadcast for jobs awaiting acceptance "
                f"(current: '{job.status.value}')."
            )

        expires_at = self._clock() + (ttl or self._policy.offer_ttl)
        created: list[JobOffer] = []
        seen: set[uuid.UUID] = set()

        for contractor in providers:
            if contractor.id in seen:
                continue
            seen.add(contractor.id)
            if is_eligible is not None and not is_eligible(job, contractor):
                continue
            if await self._offers.get(job.id, contractor.id) is not None:
                continue
            created.append(await self._offers.create(job.id, contractor.id, expires_at))

        notified = 0
        failures = 0
        if self._notifier is not None:
            for offer in created:
                try:
                    await self._notifier.notify_provider(offer, job)
                    notified += 1
                except Exception:
                    failures += 1
                    logger.exception(
                        "Offer notification failed: job=%s, contractor=%s",
                        job.id,
                        offer.contractor_id,
                    )

        logger.info(
            "Broadcast job %s to %d contractors (expires %s, notify failures=%d)",
            job.id,
            len(created),
            expires_at.isoformat(),
            failures,
        )
        return BroadcastResult(
            offers=created,
            notified=notified,
            notification_failures=failures,
        )

    # -- guards ------------------------------------------------------------

    async def _load_open(
        self,
        job_id: uuid.UUID,
        provider_id: uuid.UUID,
    ) -> tuple[Job, JobOffer]:
        """Return the job and an offer that may still be acted on."""
        offer = await self._offers.get(job_id, provider_id)
        if offer is None:
            raise OfferNotFoundError(job_id, provider_id)

        job = await self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if offer.kind in (OfferKind.ACCEPT, OfferKind.DECLINE):
            raise OfferClosedError(job_id, provider_id, offer.kind)

        if job.status != JobStatus.AWAITING_ACCEPT:
            raise AlreadyClaimedError(job_id)

        if offer.kind == OfferKind.EXPIRED or self._clock() >= ensure_utc(offer.expires_at):
            raise OfferExpiredError(job_id, provider_id, offer.expires_at)

        return job, offer

    def _schedule_values(self, job: Job, now: datetime) -> dict:
        if job.scheduled_at is not None:
            return {}
        return {"scheduled_at": now + self._policy.schedule_lead}

    async def _claim(
        self,
        job: Job,
        offer: JobOffer,
        now: datetime,
        **values,
    ) -> tuple[Job, JobOffer, int]:
        won = await self._jobs.compare_and_set_status(
            job.id,
            JobStatus.AWAITING_ACCEPT,
            JobStatus.ACCEPTED,
            **self._schedule_values(job, now),
            **values,
        )
        if not won:
            logger.info(
                "Accept lost race: job=%s, contractor=%s", job.id, offer.contractor_id
            )
            raise AlreadyClaimedError(job.id)

        offer = await self._offers.set_kind(
            offer,
            OfferKind.ACCEPT,
            accepted_at=now,
            counter_net_cents=values.get("contractor_net_cents"),
        )
        expired = await self._offers.expire_others(job.id, offer.contractor_id)
        claimed = await self._jobs.get(job.id)
        if claimed is None:
            raise JobNotFoundError(job.id)
        return claimed, offer, expired

    # -- responses ---------------------------------------------------------

    async def accept(self, job_id: uuid.UUID, provider_id: uuid.UUID) -> AcceptResult:
        """Claim the job for ``provider_id``.

        Raises:
            OfferNotFoundError, OfferClosedError, OfferExpiredError:
                The contractor's offer cannot be acted on.
            AlreadyClaimedError: The job is no longer awaiting acceptance,
                including when the conditional write loses a race.
        """
        job, offer = await self._load_open(job_id, provider_id)
        now = self._clock()
        job, offer, expired = await self._claim(job, offer, now)

        logger.info(
            "Job %s accepted by contractor %s (%d other offers expired)",
            job_id,
            provider_id,
            expired,
        )
        return AcceptResult(job=job, offer=offer, expired_offers=expired)

    async def counter(
        self,
        job_id: uuid.UUID,
        provider_id: uuid.UUID,
        counter_net_cents: int,
    ) -> CounterResult:
        """Propose a different contractor net for the job.

        Raises:
            OutOfRangeError: Counter outside the band around the original net.
            plus every error ``accept`` can raise.
        """
        job, offer = await self._load_open(job_id, provider_id)
        original_net = Decimal(job.contractor_net_cents)
        requested = Decimal(counter_net_cents)

        if not (
            original_net * self._policy.counter_min_fraction
            <= requested
            <= original_net * self._policy.counter_max_fraction
        ):
            bounds = counter_bounds(job.contractor_net_cents, self._policy)
            logger.info(
                "Counter out of range: job=%s, contractor=%s, requested=%d, range=[%d, %d]",
                job_id,
                provider_id,
                counter_net_cents,
                bounds.min_cents,
                bounds.max_cents,
            )
            raise OutOfRangeError(bounds.min_cents, bounds.max_cents, counter_net_cents)

        if requested <= original_net * self._policy.auto_approve_fraction:
            client_price = client_price_for(counter_net_cents, job.margin_pct)
            now = self._clock()
            job, offer, expired = await self._claim(
                job,
                offer,
                now,
                contractor_net_cents=counter_net_cents,
                client_price_cents=client_price,
                platform_fee_cents=client_price - counter_net_cents,
            )
            logger.info(
                "Counter auto-approved: job=%s, contractor=%s, net=%d, client=%d",
                job_id,
                provider_id,
                counter_net_cents,
                client_price,
            )
            return CounterResult(
                offer=offer,
                auto_approved=True,
                provider_net_cents=counter_net_cents,
                client_price_cents=client_price,
                job=job,
                expired_offers=expired,
            )

        offer = await self._offers.set_kind(
            offer, OfferKind.COUNTER, counter_net_cents=counter_net_cents
        )
        logger.info(
            "Counter needs manual approval: job=%s, contractor=%s, net=%d",
            job_id,
            provider_id,
            counter_net_cents,
        )
        return CounterResult(
            offer=offer,
            auto_approved=False,
            provider_net_cents=counter_net_cents,
            client_price_cents=client_price_for(counter_net_cents, job.margin_pct),
        )

    async def decline(self, job_id: uuid.UUID, provider_id: uuid.UUID) -> JobOffer:
        """Record that the contractor passes on the job. Idempotent."""
        offer = await self._offers.get(job_id, provider_id)
        if offer is None:
            raise OfferNotFoundError(job_id, provider_id)
        if offer.kind == OfferKind.DECLINE:
            return offer
        if offer.kind == OfferKind.ACCEPT:
            raise OfferClosedError(job_id, provider_id, offer.kind)
        if offer.kind == OfferKind.EXPIRED:
            raise OfferExpiredError(job_id, provider_id, offer.expires_at)

        offer = await self._offers.set_kind(offer, OfferKind.DECLINE)
        logger.info("Offer declined: job=%s, contractor=%s", job_id, provider_id)
        return offer
