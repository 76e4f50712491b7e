# molle/domain/notifications.py

from dataclasses import dataclass, field

PAYMENT_SUCCESS = "SUCCESS"


@dataclass(frozen=True)
class PaymentNotification:
    """
    What settlement needs from a gateway notification, whichever route
    delivered it (signed webhook or admin manual release).
    """

    order_id: str
    payment_status: str | None
    gateway_payment_id: str | None = None
    order_tags: dict[str, str] = field(default_factory=dict)
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None

    @property
    def is_successful(self) -> bool:
        return self.payment_status == PAYMENT_SUCCESS

    def tag(self, name: str) -> str | None:
        value = self.order_tags.get(name)
        if value is None or value == "":
            return None
        return str(value)


@dataclass(frozen=True)
class SettlementResult:
    booking_id: str
    ticket_count: int
    tickets_created: int = 0
    already_settled: bool = False
    success: bool = True

    @property
    def message(self) -> str:
        if self.already_settled:
            return "Booking is already confirmed and tickets exist"
        if self.tickets_created > 0:
            return f"Tickets released successfully ({self.tickets_created} tickets created)"
        return "Booking confirmed and tickets verified"
