# molle/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Boolean,
    DateTime,
    Enum,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional
from decimal import Decimal
from uuid import uuid4

from molle.infrastructure.db.session import Base
from molle.domain.state_machine import (
    BookingStatus,
    PaymentStatus,
    TicketStatus,
    UserRole,
)

Money = Numeric(12, 2)
Percentage = Numeric(5, 2)


def _uuid() -> str:
    return str(uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.USER,
    )
    wallet_balance: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        default=Decimal("0"),
    )
    # Per-host override of the platform host fee; NULL means platform default.
    host_fee_percentage: Mapped[Decimal | None] = mapped_column(Percentage, nullable=True)

    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="ck_wallet_balance_nonnegative"),
    )


class Event(TimestampMixin, Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(160), nullable=False, unique=True)
    host_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
    )
    sold_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    referral_percentage: Mapped[Decimal] = mapped_column(
        Percentage,
        nullable=False,
        default=Decimal("0"),
    )

    host: Mapped[User] = relationship()
    packages: Mapped[list["Package"]] = relationship(
        back_populates="event",
        order_by="Package.created_at",
    )

    __table_args__ = (
        CheckConstraint("sold_tickets >= 0", name="ck_sold_tickets_nonnegative"),
    )


class Package(TimestampMixin, Base):
    __tablename__ = "packages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    event: Mapped[Event] = relationship(back_populates="packages")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_package_price_nonnegative"),
    )


class ReferralLink(TimestampMixin, Base):
    __tablename__ = "referral_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    referral_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    referrer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
    )
    event_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=True,
    )

    referrer: Mapped[User] = relationship()


class Referral(TimestampMixin, Base):
    __tablename__ = "referrals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    referral_code: Mapped[str] = mapped_column(String(64), nullable=False)
    commission: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_commission_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    referrer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
    )
    referred_user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
    )
    referral_link_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("referral_links.id"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_user_id", name="uq_referral_pair"),
    )


class Booking(TimestampMixin, Base):
    """
    One purchase attempt. booking_number is the order id the payment
    gateway echoes back in its notifications.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_number: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
    )
    event_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=False,
    )
    # Legacy single-package checkout; multi-package selections live in TicketData.
    package_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("packages.id"),
        nullable=True,
    )
    referral_link_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("referral_links.id"),
        nullable=True,
    )

    user: Mapped[User] = relationship()
    event: Mapped[Event] = relationship()
    referral_link: Mapped[ReferralLink | None] = relationship()
    payment: Mapped[Optional["Payment"]] = relationship(back_populates="booking")
    ticket_data: Mapped[Optional["TicketData"]] = relationship(back_populates="booking")
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="booking")

    __table_args__ = (
        UniqueConstraint("booking_number", name="uq_booking_number"),
        CheckConstraint("ticket_count > 0", name="ck_ticket_count_positive"),
    )


class TicketData(TimestampMixin, Base):
    """Checkout selection waiting for payment; deleted once tickets exist."""

    __tablename__ = "ticket_data"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        unique=True,
    )
    data: Mapped[str] = mapped_column(Text, nullable=False)

    booking: Mapped[Booking] = relationship(back_populates="ticket_data")


class Ticket(TimestampMixin, Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ticket_number: Mapped[str] = mapped_column(String(64), nullable=False)
    qr_code: Mapped[str] = mapped_column(String(160), nullable=False)
    full_name: Mapped[str] = mapped_column(String(128), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False, default=18)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    ticket_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, name="ticket_status"),
        nullable=False,
        default=TicketStatus.ACTIVE,
    )
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), nullable=False)
    package_id: Mapped[str] = mapped_column(String(36), ForeignKey("packages.id"), nullable=False)
    booking_id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id"), nullable=False)

    booking: Mapped[Booking] = relationship(back_populates="tickets")
    event: Mapped[Event] = relationship()
    package: Mapped[Package] = relationship()

    __table_args__ = (
        UniqueConstraint("ticket_number", name="uq_ticket_number"),
        UniqueConstraint("qr_code", name="uq_ticket_qr_code"),
    )


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        unique=True,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    gateway_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    booking: Mapped[Booking] = relationship(back_populates="payment")


class PlatformSetting(TimestampMixin, Base):
    __tablename__ = "platform_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(String(32), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class PaymentWebhookEvent(Base):
    __tablename__ = "payment_webhook_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_id: Mapped[str] = mapped_column(String(128), nullable=False)
    booking_id: Mapped[str] = mapped_column(String(36), nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PROCESSED")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("provider", "payment_id", name="uq_webhook_provider_payment_id"),
    )
