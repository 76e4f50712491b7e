import json
from decimal import Decimal

from sqlalchemy import select

from molle.domain.state_machine import BookingStatus, PaymentStatus, UserRole
from molle.infrastructure.db.models import (
    Base,
    Booking,
    Event,
    Package,
    Payment,
    TicketData,
    User,
)
from molle.infrastructure.db.session import engine, get_db_session
from molle.infrastructure.repositories.fee_settings_repository import FeeSettingsRepository


def _get_or_create_user(db, email: str, name: str, role: UserRole, phone: str | None = None) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user:
        return user

    user = User(email=email, name=name, role=role, phone=phone, wallet_balance=Decimal("0"))
    db.add(user)
    db.flush()
    return user


def seed_event(db, host: User) -> Event:
    event = db.execute(select(Event).where(Event.slug == "sunset-rooftop-social")).scalar_one_or_none()
    if event:
        return event

    event = Event(
        title="Sunset Rooftop Social",
        slug="sunset-rooftop-social",
        host_id=host.id,
        max_tickets=200,
        referral_percentage=Decimal("3"),
    )
    db.add(event)
    db.flush()

    for name, price in (("Early Bird", "499"), ("Regular", "799"), ("VIP", "1999")):
        db.add(Package(event_id=event.id, name=name, price=Decimal(price)))
    db.flush()
    return event


def seed_pending_booking(db, buyer: User, event: Event) -> Booking:
    booking_number = "BKDEMO0001"
    booking = db.execute(
        select(Booking).where(Booking.booking_number == booking_number)
    ).scalar_one_or_none()
    if booking:
        return booking

    regular = next(package for package in event.packages if package.name == "Regular")
    booking = Booking(
        booking_number=booking_number,
        status=BookingStatus.PENDING,
        ticket_count=2,
        total_amount=Decimal("1966.00"),
        user_id=buyer.id,
        event_id=event.id,
        package_id=regular.id,
    )
    db.add(booking)
    db.flush()

    db.add(Payment(booking_id=booking.id, amount=booking.total_amount, status=PaymentStatus.PENDING))
    db.add(
        TicketData(
            booking_id=booking.id,
            data=json.dumps(
                [
                    {
                        "pkgId": regular.id,
                        "qty": 2,
                        "holders": [
                            {"name": buyer.name, "age": 27, "phone": buyer.phone},
                            {"name": "Riya Sen", "age": 26, "phone": "9000000002"},
                        ],
                    }
                ]
            ),
        )
    )
    return booking


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        FeeSettingsRepository(db).list_settings()
        _get_or_create_user(db, "admin@molle.app", "Molle Treasury", UserRole.ADMIN)
        host = _get_or_create_user(db, "host@molle.app", "Skyline Events", UserRole.HOST)
        buyer = _get_or_create_user(db, "buyer@molle.app", "Arjun Mehta", UserRole.USER, "9000000001")
        event = seed_event(db, host)
        booking = seed_pending_booking(db, buyer, event)
        print(f"Seed complete: event {event.slug}, pending order {booking.booking_number}.")


if __name__ == "__main__":
    main()
