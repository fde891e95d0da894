"""Offer State Machine Guard.

Uses python-statemachine to enforce legal offer lifecycle transitions at the
domain level. No matter what the API or a service does, an illegal
transition (e.g., Open -> FundsReleased) raises TransitionNotAllowed.

The state machine is instantiated per-offer and validates transitions before
the offer row's status field is updated.

Transition table:
    Open            -> Accepted        (accept)
    Open            -> Cancelled       (cancel)
    Accepted        -> ProofSubmitted  (submit_proof)
    Accepted        -> Cancelled       (buyer_refund_timeout)
    ProofSubmitted  -> FundsReleased   (release)
    ProofSubmitted  -> FundsReleased   (seller_claim_timeout)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from midnight_markets.domain.enums import OfferStatus

__all__ = [
    "OfferStateMachine",
    "TransitionNotAllowed",
    "source_states",
    "validate_transition",
]


class OfferStateMachine(StateMachine):
    """State machine that guards offer lifecycle transitions.

    Usage:
        sm = OfferStateMachine(current_status="Open")
        sm.send("accept")   # transitions to Accepted
        sm.status           # "Accepted"
    """

    # --- States ---
    OPEN = State("Open", value=OfferStatus.OPEN.value, initial=True)
    ACCEPTED = State("Accepted", value=OfferStatus.ACCEPTED.value)
    PROOF_SUBMITTED = State("ProofSubmitted", value=OfferStatus.PROOF_SUBMITTED.value)
    FUNDS_RELEASED = State("FundsReleased", value=OfferStatus.FUNDS_RELEASED.value, final=True)
    CANCELLED = State("Cancelled", value=OfferStatus.CANCELLED.value, final=True)

    # --- Events / Transitions ---

    # Escrow funding
    accept = OPEN.to(ACCEPTED)

    # Delivery
    submit_proof = ACCEPTED.to(PROOF_SUBMITTED)

    # Settlement
    release = PROOF_SUBMITTED.to(FUNDS_RELEASED)

    # Cancellation is only possible before funds enter escrow
    cancel = OPEN.to(CANCELLED)

    # Timeouts
    buyer_refund_timeout = ACCEPTED.to(CANCELLED)
    seller_claim_timeout = PROOF_SUBMITTED.to(FUNDS_RELEASED)

    def __init__(self, current_status: str = OfferStatus.OPEN.value) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current OfferStatus value (e.g., "Accepted").
                            Must match one of the State value strings exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches OfferStatus enum)."""
        return str(self.current_state_value)

    @property
    def offer_status(self) -> OfferStatus:
        return OfferStatus(self.status)

    @property
    def is_final(self) -> bool:
        return self.offer_status.is_terminal

    def get_event_names(self) -> list[str]:
        return [event.id for event in self.events]

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]

    def fire(self, event_name: str) -> OfferStatus:
        """Fire a named event and return the new status.

        Raises:
            ValueError: If the event is not declared on the machine.
            TransitionNotAllowed: If the event cannot fire from the current state.
        """
        if event_name not in self.get_event_names():
            raise ValueError(
                f"Unknown event '{event_name}'. "
                f"Allowed events from {self.status}: {self.get_allowed_events()}"
            )
        self.send(event_name)
        return self.offer_status


def source_states(event_name: str) -> list[OfferStatus]:
    """States with an outgoing transition for ``event_name``, in declaration order."""
    return [
        OfferStatus(state.value)
        for state in OfferStateMachine.states
        if any(transition.match(event_name) for transition in state.transitions)
    ]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns the
    resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = OfferStateMachine(current_status=current_status)
    sm.fire(event_name)
    return sm.status
