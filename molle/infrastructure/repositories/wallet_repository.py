# molle/infrastructure/repositories/wallet_repository.py

import logging
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from molle.infrastructure.db.models import Referral, ReferralLink, User
from molle.domain.exceptions import TreasuryAccountError
from molle.domain.state_machine import UserRole

logger = logging.getLogger(__name__)


class WalletRepository:

    def __init__(self, db: Session):
        self.db = db

    def credit(self, user_id: str, amount: Decimal) -> None:
        """
        Atomic increment; the balance is never read back into Python first.
        """
        if amount <= 0:
            return

        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(wallet_balance=User.wallet_balance + amount)
            .execution_options(synchronize_session="fetch")
        )

    def get_treasury_account(self, configured_user_id: str | None) -> User:
        if configured_user_id:
            account = self.db.get(User, configured_user_id)
            if not account:
                raise TreasuryAccountError(
                    f"Configured treasury account {configured_user_id} does not exist"
                )
            return account

        stmt = select(User).where(User.role == UserRole.ADMIN).limit(2)
        admins = list(self.db.execute(stmt).scalars().all())
        if not admins:
            raise TreasuryAccountError("No admin account available for platform earnings")
        if len(admins) > 1:
            raise TreasuryAccountError(
                "Multiple admin accounts exist; set PLATFORM_TREASURY_USER_ID"
            )

        logger.warning(
            "PLATFORM_TREASURY_USER_ID not set; crediting the only admin account %s",
            admins[0].id,
        )
        return admins[0]

    def record_referral(
        self,
        referral_link: ReferralLink,
        referred_user_id: str,
        commission: Decimal,
    ) -> Referral | None:
        existing = self.db.execute(
            select(Referral)
            .where(Referral.referrer_id == referral_link.referrer_id)
            .where(Referral.referred_user_id == referred_user_id)
        ).scalar_one_or_none()
        if existing:
            return None

        referral = Referral(
            referral_code=referral_link.referral_code,
            commission=commission,
            is_commission_paid=True,
            referrer_id=referral_link.referrer_id,
            referred_user_id=referred_user_id,
            referral_link_id=referral_link.id,
        )
        self.db.add(referral)
        return referral
