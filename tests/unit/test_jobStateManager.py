"""
Unit tests for the Job State Manager.

Tests the finite state machine governing job status transitions, actor
guards, cancellation rules, and the complete job lifecycle.
"""

import pytest

from prereno.models import JobStatus
from prereno.services.jobStateManager import (
    ActorType,
    InvalidTransitionError,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    _CLIENT_CANCELLABLE,
    ensure_transition,
    get_valid_transitions,
    validate_transition,
)


# ---------------------------------------------------------------------------
# Valid state transitions (happy path)
# ---------------------------------------------------------------------------


class TestValidTransitions:

    def test_draft_to_awaiting_accept_by_client(self):
        result = validate_transition(
            JobStatus.DRAFT, JobStatus.AWAITING_ACCEPT, ActorType.CLIENT
        )
        assert result.allowed is True

    def test_awaiting_accept_to_accepted_by_contractor(self):
        result = validate_transition(
            JobStatus.AWAITING_ACCEPT, JobStatus.ACCEPTED, ActorType.CONTRACTOR
        )
        assert result.allowed is True

    def test_accepted_to_scheduled_by_system(self):
        result = validate_transition(JobStatus.ACCEPTED, JobStatus.SCHEDULED)
        assert result.allowed is True

    def test_scheduled_to_in_progress_by_contractor(self):
        result = validate_transition(
            JobStatus.SCHEDULED, JobStatus.IN_PROGRESS, ActorType.CONTRACTOR
        )
        assert result.allowed is True

    def test_scheduled_straight_to_ready_for_review(self):
        """Small jobs can be finished in the same visit."""
        result = validate_transition(
            JobStatus.SCHEDULED, JobStatus.READY_FOR_REVIEW, ActorType.CONTRACTOR
        )
        assert result.allowed is True

    def test_ready_for_review_to_completed_by_client(self):
        result = validate_transition(
            JobStatus.READY_FOR_REVIEW, JobStatus.COMPLETED, ActorType.CLIENT
        )
        assert result.allowed is True

    def test_ready_for_review_to_disputed_by_client(self):
        result = validate_transition(
            JobStatus.READY_FOR_REVIEW, JobStatus.DISPUTED, ActorType.CLIENT
        )
        assert result.allowed is True

    def test_disputed_resolved_by_admin(self):
        for target in (JobStatus.COMPLETED, JobStatus.CANCELLED):
            result = validate_transition(JobStatus.DISPUTED, target, ActorType.ADMIN)
            assert result.allowed is True


# ---------------------------------------------------------------------------
# Invalid state transitions
# ---------------------------------------------------------------------------


class TestInvalidTransitions:

    def test_draft_cannot_skip_to_accepted(self):
        result = validate_transition(JobStatus.DRAFT, JobStatus.ACCEPTED)
        assert result.allowed is False
        assert "Invalid transition" in result.reason

    def test_awaiting_accept_cannot_go_back_to_draft(self):
        result = validate_transition(JobStatus.AWAITING_ACCEPT, JobStatus.DRAFT)
        assert result.allowed is False

    def test_in_progress_cannot_be_cancelled(self):
        result = validate_transition(
            JobStatus.IN_PROGRESS, JobStatus.CANCELLED, ActorType.ADMIN
        )
        assert result.allowed is False

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_exits(self, terminal):
        assert VALID_TRANSITIONS[terminal] == set()
        for target in JobStatus:
            assert validate_transition(terminal, target, ActorType.ADMIN).allowed is False

    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(JobStatus)


# ---------------------------------------------------------------------------
# Actor guards
# ---------------------------------------------------------------------------


class TestActorGuards:

    def test_contractor_cannot_book(self):
        result = validate_transition(
            JobStatus.DRAFT, JobStatus.AWAITING_ACCEPT, ActorType.CONTRACTOR
        )
        assert result.allowed is False

    def test_client_cannot_accept_own_job(self):
        result = validate_transition(
            JobStatus.AWAITING_ACCEPT, JobStatus.ACCEPTED, ActorType.CLIENT
        )
        assert result.allowed is False

    def test_client_cannot_mark_scheduled(self):
        result = validate_transition(JobStatus.ACCEPTED, JobStatus.SCHEDULED, ActorType.CLIENT)
        assert result.allowed is False
        assert "payment" in result.reason

    def test_client_cannot_complete_work(self):
        result = validate_transition(
            JobStatus.IN_PROGRESS, JobStatus.READY_FOR_REVIEW, ActorType.CLIENT
        )
        assert result.allowed is False

    def test_contractor_cannot_approve(self):
        result = validate_transition(
            JobStatus.READY_FOR_REVIEW, JobStatus.COMPLETED, ActorType.CONTRACTOR
        )
        assert result.allowed is False


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:

    @pytest.mark.parametrize("status", sorted(_CLIENT_CANCELLABLE, key=lambda s: s.value))
    def test_client_can_cancel_before_work_starts(self, status):
        result = validate_transition(status, JobStatus.CANCELLED, ActorType.CLIENT)
        assert result.allowed is True

    def test_contractor_cannot_cancel(self):
        result = validate_transition(
            JobStatus.ACCEPTED, JobStatus.CANCELLED, ActorType.CONTRACTOR
        )
        assert result.allowed is False
        assert "client or an administrator" in result.reason

    def test_client_cannot_cancel_disputed_job(self):
        result = validate_transition(JobStatus.DISPUTED, JobStatus.CANCELLED, ActorType.CLIENT)
        assert result.allowed is False
        assert "Client cannot cancel" in result.reason

    def test_admin_can_cancel_disputed_job(self):
        result = validate_transition(JobStatus.DISPUTED, JobStatus.CANCELLED, ActorType.ADMIN)
        assert result.allowed is True


# ---------------------------------------------------------------------------
# ensure_transition / get_valid_transitions
# ---------------------------------------------------------------------------


class TestEnsureTransition:

    def test_allowed_transition_returns_none(self):
        assert ensure_transition(JobStatus.DRAFT, JobStatus.AWAITING_ACCEPT) is None

    def test_disallowed_transition_raises_with_reason(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition(JobStatus.COMPLETED, JobStatus.CANCELLED, ActorType.CLIENT)
        assert "completed" in exc_info.value.reason


class TestGetValidTransitions:

    def test_client_options_from_scheduled(self):
        assert get_valid_transitions(JobStatus.SCHEDULED, ActorType.CLIENT) == [
            JobStatus.CANCELLED
        ]

    def test_contractor_options_from_scheduled(self):
        assert get_valid_transitions(JobStatus.SCHEDULED, ActorType.CONTRACTOR) == [
            JobStatus.IN_PROGRESS,
            JobStatus.READY_FOR_REVIEW,
        ]

    def test_full_lifecycle(self):
        path = [
            (JobStatus.DRAFT, JobStatus.AWAITING_ACCEPT, ActorType.CLIENT),
            (JobStatus.AWAITING_ACCEPT, JobStatus.ACCEPTED, ActorType.CONTRACTOR),
            (JobStatus.ACCEPTED, JobStatus.SCHEDULED, ActorType.SYSTEM),
            (JobStatus.SCHEDULED, JobStatus.IN_PROGRESS, ActorType.CONTRACTOR),
            (JobStatus.IN_PROGRESS, JobStatus.READY_FOR_REVIEW, ActorType.CONTRACTOR),
            (JobStatus.READY_FOR_REVIEW, JobStatus.COMPLETED, ActorType.CLIENT),
        ]
        for current, target, actor in path:
            assert validate_transition(current, target, actor).allowed is True, (current, target)
