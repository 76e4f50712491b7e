

class MolleError(Exception):
    """
    Base exception for all domain-level errors
    inside the Molle settlement service.
    """


class InvalidStateTransitionError(MolleError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class BookingNotFoundError(MolleError):
    """Raised when no booking matches an external order id."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Booking not found for order ID: {order_id}")


class PaymentNotSuccessfulError(MolleError):
    """Raised when the gateway reports anything but a successful payment."""

    def __init__(self, payment_status: str | None):
        self.payment_status = payment_status
        super().__init__("Payment status is not SUCCESS")


class PartialDataError(MolleError):
    """
    A single selection line or holder could not be turned into a ticket.
    Recovered locally; the rest of the booking still settles.
    """


class InvalidFeeInputError(MolleError, ValueError):
    """Raised for fee inputs the calculator refuses, e.g. a negative price."""


class InvalidSettingError(MolleError, ValueError):
    """Raised when a fee setting update is not a percentage in [0, 100]."""


class TreasuryAccountError(MolleError):
    """Raised when platform earnings have no single account to land in."""


class TicketNotFoundError(MolleError):
    """Raised when no ticket matches a QR payload."""


class TicketVerificationError(MolleError):
    """Raised when a ticket cannot be checked in (already used, cancelled)."""


class AccessDeniedError(MolleError):
    """Raised when the caller may not act on the requested resource."""


class EventNotFoundError(MolleError):
    """Raised when a fee quote is requested for an unknown event."""


class HostNotFoundError(MolleError):
    """Raised when a host fee override targets an unknown user."""
