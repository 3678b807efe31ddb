"""Lifecycle guards for negotiations, contracts and payments.

Uses python-statemachine to enforce legal state transitions at the domain
level. A machine is instantiated at the entity's persisted status, the event
is fired, and only then is the ORM status column written. An illegal
transition (e.g. signed -> completed) never reaches the database.

Contract transition table:
    draft     -> pending     (deployment_confirmed)
    pending   -> signed      (fully_signed)
    signed    -> executed    (payment_verified)     escrow service only
    executed  -> completed   (escrow_released)      escrow service only
    draft | pending | signed | executed -> cancelled (cancel)
    draft | pending | signed | executed -> disputed  (dispute)

Payment transition table:
    pending         -> held_in_escrow      (verification_succeeded)
    pending         -> failed              (verification_failed)
    held_in_escrow  -> released_to_seller  (release)
    held_in_escrow  -> refunded            (refund)

Negotiation transition table:
    active  -> pending     (hold)
    pending -> active      (resume)
    active | pending -> completed  (complete)
    active | pending -> cancelled  (cancel)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from wastex.domain.exceptions import InvalidStateTransitionError


class _StatusGuard:
    """Shared construction and helpers for the persisted-status machines."""

    entity_name = "entity"

    def __init__(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}  # type: ignore[attr-defined]
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown {self.entity_name} status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)  # type: ignore[call-arg]

    @property
    def status(self) -> str:
        """Current state value, matching the persisted enum string."""
        return str(self.current_state.value)  # type: ignore[attr-defined]

    def get_allowed_events(self) -> list[str]:
        """Event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]  # type: ignore[attr-defined]


class NegotiationStateMachine(_StatusGuard, StateMachine):
    """Guards negotiation status updates."""

    entity_name = "negotiation"

    active = State("Active", value="active", initial=True)
    pending = State("Pending", value="pending")
    completed = State("Completed", value="completed", final=True)
    cancelled = State("Cancelled", value="cancelled", final=True)

    hold = active.to(pending)
    resume = pending.to(active)
    complete = active.to(completed) | pending.to(completed)
    cancel = active.to(cancelled) | pending.to(cancelled)


class ContractStateMachine(_StatusGuard, StateMachine):
    """Guards the contract lifecycle.

    Usage:
        sm = ContractStateMachine("pending")
        sm.fully_signed()
        sm.status  # "signed"
    """

    entity_name = "contract"

    draft = State("Draft", value="draft", initial=True)
    pending = State("Pending signatures", value="pending")
    signed = State("Signed", value="signed")
    executed = State("Executed", value="executed")
    completed = State("Completed", value="completed", final=True)
    cancelled = State("Cancelled", value="cancelled", final=True)
    disputed = State("Disputed", value="disputed", final=True)

    deployment_confirmed = draft.to(pending)
    fully_signed = pending.to(signed)
    payment_verified = signed.to(executed)
    escrow_released = executed.to(completed)

    cancel = (
        draft.to(cancelled)
        | pending.to(cancelled)
        | signed.to(cancelled)
        | executed.to(cancelled)
    )
    dispute = (
        draft.to(disputed)
        | pending.to(disputed)
        | signed.to(disputed)
        | executed.to(disputed)
    )


class PaymentStateMachine(_StatusGuard, StateMachine):
    """Guards the escrow payment lifecycle. Every terminal state is final."""

    entity_name = "payment"

    pending = State("Pending", value="pending", initial=True)
    held_in_escrow = State("Held in escrow", value="held_in_escrow")
    released_to_seller = State("Released to seller", value="released_to_seller", final=True)
    refunded = State("Refunded", value="refunded", final=True)
    failed = State("Failed", value="failed", final=True)

    verification_succeeded = pending.to(held_in_escrow)
    verification_failed = pending.to(failed)
    release = held_in_escrow.to(released_to_seller)
    refund = held_in_escrow.to(refunded)


def fire_transition(
    machine_cls: type[_StatusGuard],
    current_status: str,
    event_name: str,
) -> str:
    """Fire ``event_name`` from ``current_status`` and return the new status.

    Raises:
        InvalidStateTransitionError: If the event is unknown or not allowed
            from the current status.
    """
    sm = machine_cls(current_status)
    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise InvalidStateTransitionError(machine_cls.entity_name, current_status, event_name)
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(
            machine_cls.entity_name, current_status, event_name
        ) from err
    return sm.status
