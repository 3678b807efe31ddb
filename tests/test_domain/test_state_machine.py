"""Tests for the lifecycle guards.

These tests verify that:
    1. The happy paths walk from the initial to the final states.
    2. Illegal transitions raise InvalidStateTransitionError.
    3. Terminal states accept no further events.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from wastex.domain.exceptions import InvalidStateTransitionError
from wastex.domain.state_machine import (
    ContractStateMachine,
    NegotiationStateMachine,
    PaymentStateMachine,
    fire_transition,
)


class TestContractHappyPath:
    def test_full_lifecycle(self) -> None:
        sm = ContractStateMachine("draft")
        sm.deployment_confirmed()
        assert sm.status == "pending"
        sm.fully_signed()
        assert sm.status == "signed"
        sm.payment_verified()
        assert sm.status == "executed"
        sm.escrow_released()
        assert sm.status == "completed"


class TestContractGuards:
    def test_cannot_skip_signatures(self) -> None:
        sm = ContractStateMachine("pending")
        with pytest.raises(TransitionNotAllowed):
            sm.payment_verified()

    def test_signed_cannot_complete_directly(self) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            fire_transition(ContractStateMachine, "signed", "escrow_released")
        assert exc_info.value.current_state == "signed"
        assert exc_info.value.attempted_state == "escrow_released"

    @pytest.mark.parametrize("status", ["draft", "pending", "signed", "executed"])
    def test_cancel_and_dispute_from_open_states(self, status: str) -> None:
        assert fire_transition(ContractStateMachine, status, "cancel") == "cancelled"
        assert fire_transition(ContractStateMachine, status, "dispute") == "disputed"

    @pytest.mark.parametrize("status", ["completed", "cancelled", "disputed"])
    def test_terminal_states_are_final(self, status: str) -> None:
        sm = ContractStateMachine(status)
        assert sm.get_allowed_events() == []
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(ContractStateMachine, status, "cancel")

    def test_unknown_event(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(ContractStateMachine, "draft", "teleport")

    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown contract status"):
            ContractStateMachine("archived")

    def test_allowed_events_from_pending(self) -> None:
        allowed = set(ContractStateMachine("pending").get_allowed_events())
        assert allowed == {"fully_signed", "cancel", "dispute"}


class TestPaymentMachine:
    def test_verify_then_release(self) -> None:
        status = fire_transition(PaymentStateMachine, "pending", "verification_succeeded")
        assert status == "held_in_escrow"
        assert fire_transition(PaymentStateMachine, status, "release") == "released_to_seller"

    def test_failed_verification_is_terminal(self) -> None:
        status = fire_transition(PaymentStateMachine, "pending", "verification_failed")
        assert status == "failed"
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(PaymentStateMachine, status, "verification_succeeded")

    def test_release_only_once(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(PaymentStateMachine, "released_to_seller", "release")

    def test_refund_requires_escrow(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(PaymentStateMachine, "pending", "refund")
        assert fire_transition(PaymentStateMachine, "held_in_escrow", "refund") == "refunded"


class TestNegotiationMachine:
    def test_hold_and_resume(self) -> None:
        assert fire_transition(NegotiationStateMachine, "active", "hold") == "pending"
        assert fire_transition(NegotiationStateMachine, "pending", "resume") == "active"

    def test_closed_negotiation_cannot_reopen(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(NegotiationStateMachine, "completed", "resume")
        with pytest.raises(InvalidStateTransitionError):
            fire_transition(NegotiationStateMachine, "cancelled", "complete")
