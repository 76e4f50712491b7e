# molle/infrastructure/repositories/webhook_repository.py

import hashlib

from sqlalchemy.orm import Session
from sqlalchemy import select

from molle.infrastructure.db.models import PaymentWebhookEvent


def hash_payload(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


class WebhookRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_delivery(self, provider: str, payment_id: str) -> PaymentWebhookEvent | None:
        stmt = (
            select(PaymentWebhookEvent)
            .where(PaymentWebhookEvent.provider == provider)
            .where(PaymentWebhookEvent.payment_id == payment_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def record_delivery(
        self,
        provider: str,
        payment_id: str,
        booking_id: str,
        payload_hash: str,
        status: str = "PROCESSED",
    ) -> PaymentWebhookEvent:
        existing = self.get_delivery(provider, payment_id)
        if existing:
            return existing

        delivery = PaymentWebhookEvent(
            provider=provider,
            payment_id=payment_id,
            booking_id=booking_id,
            payload_hash=payload_hash,
            status=status,
        )
        self.db.add(delivery)
        return delivery
