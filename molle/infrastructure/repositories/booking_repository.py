# molle/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, update

from molle.infrastructure.db.models import Booking, Event, Payment, TicketData
from molle.domain.state_machine import BookingStatus, PaymentStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_order_id(
        self,
        order_id: str,
    ) -> Booking | None:
        stmt = select(Booking).where(Booking.booking_number == order_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_for_settlement(self, order_id: str) -> Booking | None:
        """
        SELECT ... FOR UPDATE on the booking row, with everything settlement
        reads loaded up front. Serializes a webhook retry racing a manual
        release for the same order.
        """

        stmt = (
            select(Booking)
            .where(Booking.booking_number == order_id)
            .options(
                selectinload(Booking.user),
                selectinload(Booking.event).selectinload(Event.packages),
                selectinload(Booking.event).selectinload(Event.host),
                selectinload(Booking.payment),
                selectinload(Booking.ticket_data),
                selectinload(Booking.tickets),
                selectinload(Booking.referral_link),
            )
            .with_for_update(of=Booking)
            .execution_options(populate_existing=True)
        )

        return self.db.execute(stmt).scalar_one_or_none()

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status

    def complete_payment(self, payment: Payment, gateway_payment_id: str | None) -> None:
        payment.status = PaymentStatus.COMPLETED
        if gateway_payment_id:
            payment.gateway_payment_id = gateway_payment_id

    def fail_pending_payment(self, booking: Booking) -> bool:
        payment = booking.payment
        if not payment or payment.status != PaymentStatus.PENDING:
            return False
        payment.status = PaymentStatus.FAILED
        return True

    def delete_ticket_data(self, booking: Booking) -> bool:
        ticket_data = self.db.execute(
            select(TicketData).where(TicketData.booking_id == booking.id)
        ).scalar_one_or_none()
        if not ticket_data:
            return False

        self.db.delete(ticket_data)
        return True

    def increment_sold_tickets(self, event_id: str, count: int) -> None:
        if count <= 0:
            return

        self.db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(sold_tickets=Event.sold_tickets + count)
            .execution_options(synchronize_session="fetch")
        )
