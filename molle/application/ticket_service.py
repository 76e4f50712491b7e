# molle/application/ticket_service.py

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from molle.domain.exceptions import (
    AccessDeniedError,
    TicketNotFoundError,
    TicketVerificationError,
)
from molle.domain.fees import calculate_fees, quantize_money
from molle.domain.state_machine import TicketStatus, UserRole
from molle.infrastructure.db.models import Ticket
from molle.infrastructure.repositories.fee_settings_repository import FeeSettingsRepository
from molle.infrastructure.repositories.ticket_repository import TicketRepository


@dataclass(frozen=True)
class TicketView:
    ticket: Ticket
    expected_ticket_price: Decimal

    @property
    def price_matches(self) -> bool:
        return quantize_money(self.ticket.ticket_price) == self.expected_ticket_price


class TicketService:
    """Venue-side ticket lookup and check-in."""

    def __init__(self, db: Session):
        self.db = db
        self.ticket_repository = TicketRepository(db)
        self.fee_settings = FeeSettingsRepository(db)

    def get_ticket(self, qr_code: str, caller_id: str, caller_role: UserRole) -> TicketView:
        ticket = self.ticket_repository.get_by_qr_code(qr_code)
        if not ticket:
            raise TicketNotFoundError("Ticket not found")
        self._ensure_can_manage(ticket, caller_id, caller_role)
        return self._view(ticket)

    def verify_ticket(self, qr_code: str, caller_id: str, caller_role: UserRole) -> TicketView:
        ticket = self.ticket_repository.get_by_qr_code(qr_code, lock=True)
        if not ticket:
            raise TicketNotFoundError("Ticket not found")
        self._ensure_can_manage(ticket, caller_id, caller_role)

        if ticket.status == TicketStatus.VERIFIED:
            raise TicketVerificationError("Ticket has already been verified")
        if ticket.status == TicketStatus.CANCELLED:
            raise TicketVerificationError("This ticket has been cancelled")

        self.ticket_repository.mark_verified(ticket, caller_id)
        self.db.flush()
        return self._view(ticket)

    def _ensure_can_manage(self, ticket: Ticket, caller_id: str, caller_role: UserRole) -> None:
        if caller_role == UserRole.HOST and ticket.event.host_id != caller_id:
            raise AccessDeniedError("You can only verify tickets for your own events")

    def _view(self, ticket: Ticket) -> TicketView:
        # Ticket price never includes the referral cut, so referral is irrelevant here.
        percentages = self.fee_settings.resolve_for_event(ticket.event, include_referral=False)
        expected = quantize_money(calculate_fees(ticket.package.price, percentages).ticket_price)
        return TicketView(ticket=ticket, expected_ticket_price=expected)
