import json
import os
from decimal import Decimal
from itertools import count

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from molle.api.dependencies import get_db
from molle.domain.state_machine import BookingStatus, PaymentStatus, UserRole
from molle.infrastructure.db.models import (
    Base,
    Booking,
    Event,
    Package,
    Payment,
    ReferralLink,
    TicketData,
    User,
)
from molle.main import app

_sequence = count(1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin):
    return {"X-User-Id": admin.id, "X-User-Role": "ADMIN"}


@pytest.fixture
def admin(db):
    user = User(email="treasury@molle.app", name="Treasury", role=UserRole.ADMIN, wallet_balance=Decimal("0"))
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def host(db):
    user = User(email="host@molle.app", name="Skyline Events", role=UserRole.HOST, wallet_balance=Decimal("0"))
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def buyer(db):
    user = User(
        email="buyer@molle.app",
        name="Arjun Mehta",
        phone="9000000001",
        role=UserRole.USER,
        wallet_balance=Decimal("0"),
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def event(db, host):
    event = Event(
        title="Sunset Rooftop Social",
        slug="sunset-rooftop-social",
        host_id=host.id,
        max_tickets=100,
        sold_tickets=0,
        referral_percentage=Decimal("10"),
    )
    db.add(event)
    db.commit()
    return event


@pytest.fixture
def regular_package(db, event):
    package = Package(event_id=event.id, name="Regular", price=Decimal("100"))
    db.add(package)
    db.commit()
    return package


@pytest.fixture
def vip_package(db, event):
    package = Package(event_id=event.id, name="VIP", price=Decimal("200"))
    db.add(package)
    db.commit()
    return package


@pytest.fixture
def make_booking(db, buyer, event):
    """
    Creates a PENDING booking with a pending payment; pass `selection` to
    attach TicketData (a list is JSON-encoded, a string is stored as-is).
    """

    def _make(
        package=None,
        ticket_count=1,
        selection=None,
        status=BookingStatus.PENDING,
        with_payment=True,
        referral_link=None,
    ) -> Booking:
        booking = Booking(
            booking_number=f"BK{next(_sequence):06d}",
            status=status,
            ticket_count=ticket_count,
            total_amount=Decimal("0"),
            user_id=buyer.id,
            event_id=event.id,
            package_id=package.id if package else None,
            referral_link_id=referral_link.id if referral_link else None,
        )
        db.add(booking)
        db.flush()

        if with_payment:
            db.add(Payment(booking_id=booking.id, amount=Decimal("0"), status=PaymentStatus.PENDING))
        if selection is not None:
            data = selection if isinstance(selection, str) else json.dumps(selection)
            db.add(TicketData(booking_id=booking.id, data=data))

        db.commit()
        return booking

    return _make


@pytest.fixture
def referral_link(db, event):
    referrer = User(email="ref@molle.app", name="Referrer", role=UserRole.REFERRER, wallet_balance=Decimal("0"))
    db.add(referrer)
    db.flush()
    link = ReferralLink(referral_code="RIYA10", referrer_id=referrer.id, event_id=event.id)
    db.add(link)
    db.commit()
    return link


def _gateway_payload(order_id, payment_status="SUCCESS", order_tags=None, customer=None, payment_id=555001):
    return {
        "data": {
            "order": {
                "order_id": order_id,
                "order_amount": 123.0,
                "order_currency": "INR",
                "order_tags": order_tags or {},
            },
            "payment": {
                "cf_payment_id": payment_id,
                "payment_status": payment_status,
            },
            "customer_details": customer or {},
        }
    }


@pytest.fixture
def gateway_payload():
    return _gateway_payload


WEBHOOK_SECRET = "whsec_test_molle"


@pytest.fixture(autouse=True)
def settlement_env(monkeypatch):
    monkeypatch.delenv("PLATFORM_TREASURY_USER_ID", raising=False)
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", WEBHOOK_SECRET)


@pytest.fixture
def host_headers(host):
    return {"X-User-Id": host.id, "X-User-Role": "HOST"}


@pytest.fixture
def selection_for():
    """Two-holder checkout selection for a package, in the short key spelling."""

    def _selection(package, holders=("Asha Rao", "Dev Iyer")):
        return [
            {
                "pkgId": package.id,
                "qty": len(holders),
                "holders": [
                    {"name": name, "age": 25 + index, "phone": f"98000000{index:02d}"}
                    for index, name in enumerate(holders)
                ],
            }
        ]

    return _selection
