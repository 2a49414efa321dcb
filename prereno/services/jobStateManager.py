"""
Job State Manager
=================

Finite state machine governing job status transitions. Every status change
goes through ``validate_transition`` (or ``ensure_transition``) before it is
persisted.

State machine overview::

    draft --> awaiting_accept --> accepted --> scheduled
        --> in_progress --> ready_for_review --> completed

    scheduled        --> ready_for_review   (small jobs finished same visit)
    in_progress      --> disputed
    ready_for_review --> disputed
    disputed         --> completed | cancelled

    draft | awaiting_accept | accepted | scheduled --> cancelled

Guards enforce that only the correct actor type can trigger certain
transitions. ``completed`` and ``cancelled`` are terminal.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from prereno.models import JobStatus


# ---------------------------------------------------------------------------
# Actor types for guard enforcement
# ---------------------------------------------------------------------------

class ActorType(str, enum.Enum):
    CLIENT = "client"
    CONTRACTOR = "contractor"
    SYSTEM = "system"
    ADMIN = "admin"


class InvalidTransitionError(Exception):
    """Raised when a requested status change is not permitted."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.DRAFT: {
        JobStatus.AWAITING_ACCEPT,
        JobStatus.CANCELLED,
    },
    JobStatus.AWAITING_ACCEPT: {
        JobStatus.ACCEPTED,
        JobStatus.CANCELLED,
    },
    JobStatus.ACCEPTED: {
        JobStatus.SCHEDULED,
        JobStatus.CANCELLED,
    },
    JobStatus.SCHEDULED: {
        JobStatus.IN_PROGRESS,
        JobStatus.READY_FOR_REVIEW,
        JobStatus.CANCELLED,
    },
    JobStatus.IN_PROGRESS: {
        JobStatus.READY_FOR_REVIEW,
        JobStatus.DISPUTED,
    },
    JobStatus.READY_FOR_REVIEW: {
        JobStatus.COMPLETED,
        JobStatus.DISPUTED,
    },
    JobStatus.DISPUTED: {
        JobStatus.COMPLETED,
        JobStatus.CANCELLED,
    },
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELLED: set(),
}

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.CANCELLED,
})

# Statuses in which the client can still cancel (work has not started)
_CLIENT_CANCELLABLE: frozenset[JobStatus] = frozenset({
    JobStatus.DRAFT,
    JobStatus.AWAITING_ACCEPT,
    JobStatus.ACCEPTED,
    JobStatus.SCHEDULED,
})

_CONTRACTOR_ACTORS = (ActorType.CONTRACTOR, ActorType.SYSTEM, ActorType.ADMIN)
_CLIENT_ACTORS = (ActorType.CLIENT, ActorType.SYSTEM, ActorType.ADMIN)
_SYSTEM_ACTORS = (ActorType.SYSTEM, ActorType.ADMIN)


# ---------------------------------------------------------------------------
# Guard functions
# ---------------------------------------------------------------------------

def _guard_cancel(current: JobStatus, actor_type: ActorType) -> TransitionResult:
    if actor_type in _SYSTEM_ACTORS:
        return TransitionResult(allowed=True)
    if actor_type == ActorType.CLIENT and current in _CLIENT_CANCELLABLE:
        return TransitionResult(allowed=True)
    if actor_type == ActorType.CLIENT:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Client cannot cancel a job in '{current.value}' status. "
                f"Cancellation by client is only allowed in: "
                f"{', '.join(s.value for s in sorted(_CLIENT_CANCELLABLE, key=lambda s: s.value))}."
            ),
        )
    return TransitionResult(
        allowed=False,
        reason="Only the client or an administrator can cancel a job.",
    )


def _guard_actor(
    actor_type: ActorType,
    permitted: tuple[ActorType, ...],
    reason: str,
) -> TransitionResult:
    if actor_type not in permitted:
        return TransitionResult(allowed=False, reason=reason)
    return TransitionResult(allowed=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: JobStatus,
    new_status: JobStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> TransitionResult:
    """Validate whether a job status transition is allowed.

    Checks two layers:
    1. Is the transition structurally valid per the state machine?
    2. Does the actor have permission for this specific transition (guards)?
    """
    allowed_targets = VALID_TRANSITIONS.get(current_status, set())
    if new_status not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Invalid transition: '{current_status.value}' -> '{new_status.value}'. "
                f"Allowed transitions from '{current_status.value}': "
                f"{', '.join(s.value for s in sorted(allowed_targets, key=lambda s: s.value)) or 'none'}."
            ),
        )

    if new_status == JobStatus.CANCELLED:
        return _guard_cancel(current_status, actor_type)

    if new_status == JobStatus.AWAITING_ACCEPT:
        return _guard_actor(actor_type, _CLIENT_ACTORS, "Only the client can book a job.")

    if new_status == JobStatus.ACCEPTED:
        return _guard_actor(
            actor_type, _CONTRACTOR_ACTORS, "Only a contractor can accept a job."
        )

    if new_status == JobStatus.SCHEDULED:
        return _guard_actor(
            actor_type,
            _SYSTEM_ACTORS,
            "A job is scheduled only once the payment processor confirms payment.",
        )

    if new_status in (JobStatus.IN_PROGRESS, JobStatus.READY_FOR_REVIEW):
        return _guard_actor(
            actor_type,
            _CONTRACTOR_ACTORS,
            "Only the assigned contractor can start or complete work.",
        )

    if new_status == JobStatus.COMPLETED:
        return _guard_actor(
            actor_type, _CLIENT_ACTORS, "Only the client can approve completed work."
        )

    if new_status == JobStatus.DISPUTED:
        return _guard_actor(
            actor_type, _CLIENT_ACTORS, "Only the client can dispute a job."
        )

    return TransitionResult(allowed=True)


def ensure_transition(
    current_status: JobStatus,
    new_status: JobStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> None:
    """Raise ``InvalidTransitionError`` unless the transition is allowed."""
    result = validate_transition(current_status, new_status, actor_type)
    if not result.allowed:
        raise InvalidTransitionError(result.reason or "Transition not allowed.")


def get_valid_transitions(
    current_status: JobStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> list[JobStatus]:
    """Statuses the given actor can move the job to from ``current_status``."""
    candidates = VALID_TRANSITIONS.get(current_status, set())
    valid = [
        target
        for target in candidates
        if validate_transition(current_status, target, actor_type).allowed
    ]
    return sorted(valid, key=lambda s: s.value)
