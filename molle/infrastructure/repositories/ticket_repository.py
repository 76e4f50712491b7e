# molle/infrastructure/repositories/ticket_repository.py

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, func

from molle.infrastructure.db.models import Ticket
from molle.domain.state_machine import TicketStatus


class TicketRepository:

    def __init__(self, db: Session):
        self.db = db

    def count_for_booking(self, booking_id: str) -> int:
        stmt = select(func.count(Ticket.id)).where(Ticket.booking_id == booking_id)
        return self.db.execute(stmt).scalar_one()

    def list_for_booking(self, booking_id: str) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .where(Ticket.booking_id == booking_id)
            .order_by(Ticket.ticket_number)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_by_qr_code(self, qr_code: str, lock: bool = False) -> Ticket | None:
        stmt = (
            select(Ticket)
            .where(Ticket.qr_code == qr_code)
            .options(
                selectinload(Ticket.event),
                selectinload(Ticket.package),
                selectinload(Ticket.booking),
            )
        )
        if lock:
            stmt = stmt.with_for_update(of=Ticket)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_ticket(
        self,
        *,
        ticket_number: str,
        qr_code: str,
        full_name: str,
        age: int,
        phone_number: str,
        ticket_price: Decimal,
        user_id: str,
        event_id: str,
        package_id: str,
        booking_id: str,
    ) -> Ticket:
        ticket = Ticket(
            ticket_number=ticket_number,
            qr_code=qr_code,
            full_name=full_name,
            age=age,
            phone_number=phone_number,
            ticket_price=ticket_price,
            status=TicketStatus.ACTIVE,
            user_id=user_id,
            event_id=event_id,
            package_id=package_id,
            booking_id=booking_id,
        )
        self.db.add(ticket)
        return ticket

    def mark_verified(self, ticket: Ticket, verified_by: str) -> None:
        ticket.status = TicketStatus.VERIFIED
        ticket.verified_at = datetime.now(timezone.utc)
        ticket.verified_by = verified_by
