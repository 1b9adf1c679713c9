"""Deal Status State Machine Guard.

Uses python-statemachine to enforce legal status changes at the domain level.
Command handlers in domain/deal_commands.py name the event they fire; the
engine checks that the event is allowed from the current status and that the
status derived from the updated workflow lands exactly where the event says.

Transition table:
    created           -> accepted           (parties_accepted)
    accepted          -> kyc_pending        (kyc_started)
    accepted          -> documents_pending  (kyc_verified)
    kyc_pending       -> documents_pending  (kyc_verified)
    documents_pending -> payment_pending    (documents_completed)
    payment_pending   -> contract_pending   (payment_deposited)
    contract_pending  -> funds_deposited    (contract_signed)
    funds_deposited   -> in_delivery        (item_shipped)
    funds_deposited   -> delivered          (item_delivered)
    in_delivery       -> delivered          (item_delivered)
    delivered         -> completed          (receipt_confirmed)
    funds_deposited   -> disputed           (dispute_raised)
    in_delivery       -> disputed           (dispute_raised)
    delivered         -> disputed           (dispute_raised)
    disputed          -> completed          (dispute_resolved_for_seller)
    disputed          -> refunded           (dispute_resolved_for_buyer)
    created           -> cancelled          (deal_cancelled)
    accepted          -> cancelled          (deal_cancelled)
    kyc_pending       -> cancelled          (deal_cancelled)
    documents_pending -> cancelled          (deal_cancelled)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from safe_transfer.domain.exceptions import InvalidStateError


class DealStateMachine(StateMachine):
    """State machine that guards deal lifecycle transitions.

    Usage:
        sm = DealStateMachine(current_status="created")
        sm.parties_accepted()  # transitions to accepted
        sm.status              # "accepted"
    """

    # --- States ---
    CREATED = State("Created", value="created", initial=True)
    ACCEPTED = State("Accepted", value="accepted")
    KYC_PENDING = State("KYC pending", value="kyc_pending")
    DOCUMENTS_PENDING = State("Documents pending", value="documents_pending")
    PAYMENT_PENDING = State("Payment pending", value="payment_pending")
    CONTRACT_PENDING = State("Contract pending", value="contract_pending")
    FUNDS_DEPOSITED = State("Funds deposited", value="funds_deposited")
    IN_DELIVERY = State("In delivery", value="in_delivery")
    DELIVERED = State("Delivered", value="delivered")
    COMPLETED = State("Completed", value="completed", final=True)
    DISPUTED = State("Disputed", value="disputed")
    CANCELLED = State("Cancelled", value="cancelled", final=True)
    REFUNDED = State("Refunded", value="refunded", final=True)

    # --- Events / Transitions ---

    # Agreement
    parties_accepted = CREATED.to(ACCEPTED)

    # Identity verification
    kyc_started = ACCEPTED.to(KYC_PENDING)
    kyc_verified = ACCEPTED.to(DOCUMENTS_PENDING) | KYC_PENDING.to(DOCUMENTS_PENDING)

    # Paperwork and money
    documents_completed = DOCUMENTS_PENDING.to(PAYMENT_PENDING)
    payment_deposited = PAYMENT_PENDING.to(CONTRACT_PENDING)
    contract_signed = CONTRACT_PENDING.to(FUNDS_DEPOSITED)

    # Delivery
    item_shipped = FUNDS_DEPOSITED.to(IN_DELIVERY)
    item_delivered = FUNDS_DEPOSITED.to(DELIVERED) | IN_DELIVERY.to(DELIVERED)
    receipt_confirmed = DELIVERED.to(COMPLETED)

    # Disputes
    dispute_raised = (
        FUNDS_DEPOSITED.to(DISPUTED) | IN_DELIVERY.to(DISPUTED) | DELIVERED.to(DISPUTED)
    )
    dispute_resolved_for_seller = DISPUTED.to(COMPLETED)
    dispute_resolved_for_buyer = DISPUTED.to(REFUNDED)

    # Cancellation
    deal_cancelled = (
        CREATED.to(CANCELLED)
        | ACCEPTED.to(CANCELLED)
        | KYC_PENDING.to(CANCELLED)
        | DOCUMENTS_PENDING.to(CANCELLED)
    )

    def __init__(self, current_status: str = "created") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current DealStatus value (e.g., "accepted").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches DealStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a status transition and return the new status.

    Args:
        current_status: Current DealStatus value.
        event_name: The event to fire (e.g., "contract_signed").

    Returns:
        The new status string after the transition.

    Raises:
        InvalidStateError: If the event is unknown or not allowed from
            ``current_status``.
    """
    sm = DealStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise InvalidStateError(current_status, event_name)
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateError(current_status, event_name.replace("_", " ")) from err
    return sm.status
