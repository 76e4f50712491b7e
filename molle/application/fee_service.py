# molle/application/fee_service.py

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from molle.domain.exceptions import (
    AccessDeniedError,
    EventNotFoundError,
    HostNotFoundError,
)
from molle.domain.fees import FeeBreakdown, FeePercentages, calculate_fees
from molle.domain.state_machine import UserRole
from molle.infrastructure.db.models import Event, Package, PlatformSetting, User
from molle.infrastructure.repositories.fee_settings_repository import FeeSettingsRepository


class FeeService:
    """Fee settings administration and per-package price quotes."""

    def __init__(self, db: Session):
        self.db = db
        self.fee_settings = FeeSettingsRepository(db)

    def list_settings(self) -> list[PlatformSetting]:
        return self.fee_settings.list_settings()

    def update_settings(self, values: dict[str, str]) -> list[PlatformSetting]:
        return self.fee_settings.update_settings(values)

    def set_host_fee(self, host_id: str, percentage) -> User:
        host = self.db.get(User, host_id)
        if not host:
            raise HostNotFoundError("Host not found")
        if host.role != UserRole.HOST:
            raise AccessDeniedError("Fee overrides apply to host accounts only")
        return self.fee_settings.set_host_fee(host, percentage)

    def quote_event(
        self,
        event_id: str,
        package_id: str | None = None,
    ) -> tuple[Event, FeePercentages, list[tuple[Package, FeeBreakdown]]]:
        event = self.db.execute(
            select(Event)
            .where(Event.id == event_id)
            .options(selectinload(Event.packages), selectinload(Event.host))
        ).scalar_one_or_none()
        if not event:
            raise EventNotFoundError("Event not found")

        percentages = self.fee_settings.resolve_for_event(event, include_referral=True)
        packages = [
            package
            for package in event.packages
            if package_id is None or package.id == package_id
        ]
        return event, percentages, [
            (package, calculate_fees(package.price, percentages))
            for package in packages
        ]
