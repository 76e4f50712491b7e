# molle/infrastructure/repositories/fee_settings_repository.py

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session
from sqlalchemy import select

from molle.infrastructure.db.models import Event, PlatformSetting, User
from molle.domain.exceptions import InvalidSettingError
from molle.domain.fees import FeePercentages, HUNDRED, ZERO

logger = logging.getLogger(__name__)

USER_FEE = "user_fee_percentage"
HOST_FEE = "host_fee_percentage"
PLATFORM_FEE = "platform_fee_percentage"
CGST = "cgst_percentage"
SGST = "sgst_percentage"

DEFAULT_SETTINGS = [
    {
        "key": CGST,
        "value": "9",
        "display_name": "CGST (%)",
        "description": "Central Goods and Services Tax percentage applied to ticket sales",
    },
    {
        "key": SGST,
        "value": "9",
        "display_name": "SGST (%)",
        "description": "State Goods and Services Tax percentage applied to ticket sales",
    },
    {
        "key": PLATFORM_FEE,
        "value": "10",
        "display_name": "Platform Fee (%)",
        "description": "Headline platform fee percentage shown on fee breakdowns",
    },
    {
        "key": USER_FEE,
        "value": "5",
        "display_name": "User Fee (%)",
        "description": "Percentage charged to buyers on top of the ticket price",
    },
    {
        "key": HOST_FEE,
        "value": "6",
        "display_name": "Host Fee (%)",
        "description": "Percentage deducted from host proceeds unless the host has an override",
    },
]

_DEFAULTS = {item["key"]: Decimal(item["value"]) for item in DEFAULT_SETTINGS}


def parse_percentage(key: str, value) -> Decimal:
    try:
        pct = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidSettingError(
            f"Invalid percentage value for {key}: Must be between 0 and 100"
        ) from exc
    if not pct.is_finite() or pct < ZERO or pct > HUNDRED:
        raise InvalidSettingError(
            f"Invalid percentage value for {key}: Must be between 0 and 100"
        )
    return pct


class FeeSettingsRepository:

    def __init__(self, db: Session):
        self.db = db

    def list_settings(self) -> list[PlatformSetting]:
        """All settings, creating any missing default row first."""
        settings = list(self.db.execute(select(PlatformSetting)).scalars().all())
        existing_keys = {setting.key for setting in settings}

        for default in DEFAULT_SETTINGS:
            if default["key"] in existing_keys:
                continue
            setting = PlatformSetting(**default)
            self.db.add(setting)
            settings.append(setting)

        self.db.flush()
        return sorted(settings, key=lambda setting: setting.key)

    def update_settings(self, values: dict[str, str]) -> list[PlatformSetting]:
        # Validate everything before touching a row so a bad value writes nothing.
        parsed = {}
        for key, value in values.items():
            if key not in _DEFAULTS:
                raise InvalidSettingError(f"Unknown fee setting: {key}")
            parsed[key] = parse_percentage(key, value)

        settings = {setting.key: setting for setting in self.list_settings()}
        for key, pct in parsed.items():
            settings[key].value = format(pct.normalize(), "f")

        self.db.flush()
        return sorted(settings.values(), key=lambda setting: setting.key)

    def get_percentage(self, key: str) -> Decimal:
        setting = self.db.execute(
            select(PlatformSetting).where(PlatformSetting.key == key)
        ).scalar_one_or_none()
        default = _DEFAULTS[key]
        if not setting:
            return default

        try:
            return parse_percentage(key, setting.value)
        except InvalidSettingError:
            logger.warning(
                "Stored fee setting %s=%r is not a valid percentage; using default %s",
                key,
                setting.value,
                default,
            )
            return default

    def resolve_for_event(self, event: Event, include_referral: bool) -> FeePercentages:
        """
        Platform defaults, with the event host's host fee override applied and
        the event's referral cut only when the booking was referred.
        """
        host_fee = self.get_percentage(HOST_FEE)
        host = event.host
        if host is not None and host.host_fee_percentage is not None:
            host_fee = Decimal(host.host_fee_percentage)

        referral = ZERO
        if include_referral and event.referral_percentage is not None:
            referral = Decimal(event.referral_percentage)

        return FeePercentages(
            user=self.get_percentage(USER_FEE),
            host=host_fee,
            platform=self.get_percentage(PLATFORM_FEE),
            cgst=self.get_percentage(CGST),
            sgst=self.get_percentage(SGST),
            referral=referral,
        )

    def set_host_fee(self, host: User, percentage) -> User:
        if percentage is None:
            host.host_fee_percentage = None
        else:
            host.host_fee_percentage = parse_percentage(HOST_FEE, percentage)
        self.db.flush()
        return host
