"""Escrow Transaction State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter which caller drives the engine, an illegal transition
(e.g., pending -> completed) will raise TransitionNotAllowed.

The state machine is instantiated per-transaction and validates transitions
before the record's status field is updated.

Transition table:
    pending    -> fundsHeld   (payment_collected)
    pending    -> cancelled   (payment_retries_exhausted)
    pending    -> cancelled   (buyer_cancelled)
    fundsHeld  -> delivered   (delivery_confirmed)
    delivered  -> completed   (funds_released)
    pending    -> disputed    (dispute_raised)
    fundsHeld  -> disputed    (dispute_raised)
    delivered  -> disputed    (dispute_raised)

completed and cancelled are terminal. disputed has no resolution transition,
so it is declared final here as well: it absorbs the transaction.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow transaction lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="fundsHeld")
        sm.delivery_confirmed()  # transitions to delivered
        sm.status                # "delivered"
    """

    # --- States ---
    pending = State("Pending", value="pending", initial=True)
    funds_held = State("FundsHeld", value="fundsHeld")
    delivered = State("Delivered", value="delivered")
    completed = State("Completed", value="completed", final=True)
    cancelled = State("Cancelled", value="cancelled", final=True)
    disputed = State("Disputed", value="disputed", final=True)

    # --- Events / Transitions ---

    # Payment collection
    payment_collected = pending.to(funds_held)
    payment_retries_exhausted = pending.to(cancelled)

    # Delivery and release
    delivery_confirmed = funds_held.to(delivered)
    funds_released = delivered.to(completed)

    # Buyer actions
    buyer_cancelled = pending.to(cancelled)
    dispute_raised = pending.to(disputed) | funds_held.to(disputed) | delivered.to(disputed)

    def __init__(self, current_status: str = "pending") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current TransactionStatus value (e.g., "fundsHeld").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=str(current_status))

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches TransactionStatus)."""
        return str(self.current_state_value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [str(event) for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns
    the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
