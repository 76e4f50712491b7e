# molle/config.py

import os

from dotenv import load_dotenv

load_dotenv()


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def payment_webhook_secret() -> str | None:
    return os.getenv("PAYMENT_WEBHOOK_SECRET") or None


def platform_treasury_user_id() -> str | None:
    return os.getenv("PLATFORM_TREASURY_USER_ID") or None


def razorpay_credentials() -> tuple[str, str] | None:
    key_id = os.getenv("RAZORPAY_KEY_ID")
    key_secret = os.getenv("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        return None
    return key_id, key_secret


def db_connect_max_retries() -> int:
    return int(os.getenv("DB_CONNECT_MAX_RETRIES", "30"))


def db_connect_retry_delay() -> float:
    return float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5"))
