# molle/application/settlement_service.py

import logging
import secrets
import time
from collections import Counter
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from molle.application.ticket_selection import (
    SelectionLine,
    fallback_selection,
    holder_slots,
    parse_quantity_hint,
    parse_ticket_data,
)
from molle.domain.exceptions import (
    BookingNotFoundError,
    PartialDataError,
    PaymentNotSuccessfulError,
)
from molle.domain.fees import ZERO, FeePercentages, calculate_fees, quantize_money
from molle.domain.notifications import PaymentNotification, SettlementResult
from molle.domain.state_machine import BookingStateMachine, BookingStatus
from molle.infrastructure.db.models import Booking, Package, Ticket
from molle.infrastructure.repositories.booking_repository import BookingRepository
from molle.infrastructure.repositories.fee_settings_repository import FeeSettingsRepository
from molle.infrastructure.repositories.ticket_repository import TicketRepository
from molle.infrastructure.repositories.wallet_repository import WalletRepository

logger = logging.getLogger(__name__)


def generate_ticket_number(index: int) -> str:
    return f"TK{int(time.time() * 1000)}{index:03d}{secrets.token_hex(3).upper()}"


def generate_qr_code(booking_id: str, ticket_number: str) -> str:
    return f"{booking_id}-{ticket_number}-{secrets.token_hex(8)}"


def _tag_amount(value: str | None) -> Decimal:
    if value is None:
        return ZERO
    try:
        amount = Decimal(value.strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return amount if amount.is_finite() and amount > ZERO else ZERO


class SettlementService:
    """
    Applies a confirmed payment to its booking: confirms it, issues the
    tickets, pays out host/platform/referrer wallets and bumps the event's
    sold counter. Runs inside the caller's transaction; the caller commits.
    """

    def __init__(self, db: Session, treasury_user_id: str | None = None):
        self.db = db
        self.treasury_user_id = treasury_user_id
        self.booking_repository = BookingRepository(db)
        self.ticket_repository = TicketRepository(db)
        self.wallet_repository = WalletRepository(db)
        self.fee_settings = FeeSettingsRepository(db)

    def apply_settlement(self, notification: PaymentNotification) -> SettlementResult:
        booking = self.booking_repository.lock_for_settlement(notification.order_id)

        if not booking:
            raise BookingNotFoundError(notification.order_id)

        if not notification.is_successful:
            raise PaymentNotSuccessfulError(notification.payment_status)

        existing_tickets = len(booking.tickets)
        if booking.status == BookingStatus.CONFIRMED and existing_tickets > 0:
            logger.info(
                "Booking %s already settled with %s tickets; nothing to do",
                booking.id,
                existing_tickets,
            )
            return SettlementResult(
                booking_id=booking.id,
                ticket_count=existing_tickets,
                already_settled=True,
            )

        logger.info(
            "Settling booking %s (order %s, status %s, existing tickets %s)",
            booking.id,
            notification.order_id,
            booking.status.value,
            existing_tickets,
        )

        if booking.payment:
            self.booking_repository.complete_payment(
                booking.payment,
                notification.gateway_payment_id,
            )

        # A committed CONFIRMED status means wallets and the sold counter were
        # already settled by the transaction that confirmed it.
        credited = booking.status == BookingStatus.CONFIRMED
        if not credited:
            self._transition(booking, BookingStatus.CONFIRMED)

        percentages = self.fee_settings.resolve_for_event(
            booking.event,
            include_referral=booking.referral_link is not None,
        )

        created: list[Ticket] = []
        if existing_tickets == 0:
            created = self._materialize_tickets(booking, notification, percentages)

        if credited:
            logger.warning(
                "Booking %s was confirmed before settlement; wallets and sold counter left as they are",
                booking.id,
            )
        else:
            self._settle_wallets(booking, notification, percentages, created)
            self.booking_repository.increment_sold_tickets(
                booking.event_id,
                len(created) or booking.ticket_count,
            )

        self.db.flush()
        ticket_count = self.ticket_repository.count_for_booking(booking.id)

        logger.info(
            "Settled booking %s: %s tickets created, %s total",
            booking.id,
            len(created),
            ticket_count,
        )
        return SettlementResult(
            booking_id=booking.id,
            ticket_count=ticket_count,
            tickets_created=len(created),
        )

    def mark_payment_failed(self, order_id: str) -> bool:
        """
        Gateway reported a failed or abandoned payment. Drops the pending
        selection so a later retry starts clean. Confirmed bookings are left alone.
        """
        booking = self.booking_repository.get_by_order_id(order_id)
        if not booking:
            logger.info("Payment failure for unknown order %s ignored", order_id)
            return False

        if booking.status == BookingStatus.CONFIRMED:
            logger.warning(
                "Payment failure for confirmed booking %s ignored",
                booking.id,
            )
            return False

        failed = self.booking_repository.fail_pending_payment(booking)
        cleaned = self.booking_repository.delete_ticket_data(booking)
        self.db.flush()

        logger.info(
            "Payment failure applied to booking %s (payment failed=%s, selection cleared=%s)",
            booking.id,
            failed,
            cleaned,
        )
        return failed or cleaned

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)

    # -----------------------------
    # Ticket materialization
    # -----------------------------
    def _fallback_for(
        self,
        booking: Booking,
        notification: PaymentNotification,
    ) -> list[SelectionLine]:
        return fallback_selection(
            package_id=booking.package_id,
            quantity_hint=notification.tag("tkt"),
            customer_name=notification.customer_name,
            customer_phone=notification.customer_phone,
            buyer_name=booking.user.name,
            buyer_phone=booking.user.phone,
        )

    def _resolve_package(self, packages: dict[str, Package], line: SelectionLine) -> Package:
        package = packages.get(line.package_id)
        if not package:
            raise PartialDataError(f"package {line.package_id} does not belong to the event")
        return package

    def _materialize_tickets(
        self,
        booking: Booking,
        notification: PaymentNotification,
        percentages: FeePercentages,
    ) -> list[Ticket]:
        lines = None
        if booking.ticket_data:
            lines = parse_ticket_data(booking.ticket_data.data)

        created = self._issue_tickets(booking, lines or [], percentages)
        if not created:
            if lines:
                logger.warning(
                    "No usable line in the stored selection of booking %s; using fallback",
                    booking.id,
                )
            created = self._issue_tickets(
                booking,
                self._fallback_for(booking, notification),
                percentages,
            )

        if not created:
            logger.error("Booking %s settled without any valid ticket line", booking.id)

        self.booking_repository.delete_ticket_data(booking)
        return created

    def _issue_tickets(
        self,
        booking: Booking,
        lines: list[SelectionLine],
        percentages: FeePercentages,
    ) -> list[Ticket]:
        packages = {package.id: package for package in booking.event.packages}
        created: list[Ticket] = []

        for line in lines:
            try:
                package = self._resolve_package(packages, line)
            except PartialDataError as exc:
                logger.warning("Skipping selection line for booking %s: %s", booking.id, exc)
                continue

            ticket_price = quantize_money(
                calculate_fees(package.price, percentages).ticket_price
            )

            for slot in holder_slots(line, booking.user.name, booking.user.phone):
                ticket_number = generate_ticket_number(len(created))
                created.append(
                    self.ticket_repository.create_ticket(
                        ticket_number=ticket_number,
                        qr_code=generate_qr_code(booking.id, ticket_number),
                        full_name=slot.name,
                        age=slot.age,
                        phone_number=slot.phone,
                        ticket_price=ticket_price,
                        user_id=booking.user_id,
                        event_id=booking.event_id,
                        package_id=package.id,
                        booking_id=booking.id,
                    )
                )

        return created

    # -----------------------------
    # Wallets
    # -----------------------------
    def _tagged_totals(
        self,
        notification: PaymentNotification,
    ) -> tuple[Decimal, Decimal, Decimal] | None:
        host_gets = _tag_amount(notification.tag("hget"))
        admin_gets = _tag_amount(notification.tag("aget"))
        if not host_gets or not admin_gets:
            return None
        return host_gets, admin_gets, _tag_amount(notification.tag("rget"))

    def _computed_totals(
        self,
        booking: Booking,
        notification: PaymentNotification,
        percentages: FeePercentages,
        created: list[Ticket],
    ) -> tuple[Decimal, Decimal, Decimal]:
        quantities = Counter(ticket.package_id for ticket in [*booking.tickets, *created])
        if not quantities and booking.package_id:
            quantities[booking.package_id] = parse_quantity_hint(
                notification.tag("tkt"),
                default=booking.ticket_count,
            )

        packages = {package.id: package for package in booking.event.packages}
        host_gets = admin_gets = referral_amount = ZERO
        for package_id, quantity in quantities.items():
            package = packages.get(package_id)
            if not package:
                continue
            breakdown = calculate_fees(package.price, percentages).times(quantity)
            host_gets += breakdown.host_gets
            admin_gets += breakdown.admin_gets
            referral_amount += breakdown.referral_amount

        return host_gets, admin_gets, referral_amount

    def _settle_wallets(
        self,
        booking: Booking,
        notification: PaymentNotification,
        percentages: FeePercentages,
        created: list[Ticket],
    ) -> None:
        totals = self._tagged_totals(notification)
        if totals is None:
            totals = self._computed_totals(booking, notification, percentages, created)

        host_gets, admin_gets, referral_amount = (quantize_money(value) for value in totals)

        self.wallet_repository.credit(booking.event.host_id, host_gets)

        if admin_gets > ZERO:
            treasury = self.wallet_repository.get_treasury_account(self.treasury_user_id)
            self.wallet_repository.credit(treasury.id, admin_gets)

        referral_link = booking.referral_link
        if referral_amount > ZERO:
            if referral_link is None:
                logger.info(
                    "Booking %s carries a referral amount but no referral link; not credited",
                    booking.id,
                )
            else:
                self.wallet_repository.credit(referral_link.referrer_id, referral_amount)
                self.wallet_repository.record_referral(
                    referral_link,
                    booking.user_id,
                    referral_amount,
                )

        logger.info(
            "Wallets credited for booking %s: host=%s platform=%s referral=%s",
            booking.id,
            host_gets,
            admin_gets,
            referral_amount if referral_link is not None else ZERO,
        )
