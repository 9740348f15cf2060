"""Transactional token ledger backed by SQLModel + SQLite."""

from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from resume_forge.errors import AccountNotFoundError, InsufficientBalanceError
from resume_forge.ledger.models import (
    AccountBalance,
    ActivityType,
    CreditResult,
    LedgerActivityView,
)
from resume_forge.storage.common import to_db_datetime, to_utc_aware_datetime, utc_now
from resume_forge.storage.database import Database, UserContext
from resume_forge.storage.sqlmodel_models import AppUser, LedgerActivity

logger = logging.getLogger(__name__)


class LedgerRepository:
    """Balance mutations, each paired with its activity row in one transaction."""

    def __init__(self, database: Database, *, context: UserContext) -> None:
        self.database = database
        self.engine = database.engine
        self.user_id = context.user_id

    def debit(  # noqa: PLR0913
        self,
        *,
        cost: int,
        activity_type: ActivityType | str,
        description: str,
        resource_id: str | None = None,
        ai_provider: str = "none",
    ) -> int:
        """Charge ``cost`` tokens and return the new balance.

        The decrement is a single conditional UPDATE (``balance >= cost``), so two
        concurrent debits can never both pass against a balance that covers one.
        """

        if cost < 0:
            raise ValueError(f"Debit cost must be >= 0, got {cost}")
        activity = _activity_value(activity_type)
        now = utc_now()
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(AppUser)
                .where(
                    col(AppUser.user_id) == self.user_id,
                    col(AppUser.token_balance) >= cost,
                )
                .values(
                    token_balance=col(AppUser.token_balance) - cost,
                    total_tokens_used=col(AppUser.total_tokens_used) + cost,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                user = session.exec(
                    select(AppUser).where(AppUser.user_id == self.user_id),
                ).one_or_none()
                if user is None:
                    raise AccountNotFoundError(self.user_id)
                raise InsufficientBalanceError(balance=user.token_balance, required=cost)

            balance = session.exec(
                select(AppUser.token_balance).where(AppUser.user_id == self.user_id),
            ).one()
            session.add(
                LedgerActivity(
                    activity_id=str(uuid4()),
                    user_id=self.user_id,
                    activity_type=activity,
                    description=description,
                    tokens_used=cost,
                    token_balance_after=balance,
                    resource_id=resource_id,
                    status="completed",
                    ai_provider=ai_provider,
                    created_at=now,
                ),
            )
            session.commit()

        logger.info(
            "Debited %d tokens from %s for %s (balance=%d)",
            cost,
            self.user_id,
            activity,
            balance,
        )
        return balance

    def credit(
        self,
        *,
        amount: int,
        external_ref: str,
        description: str = "Token purchase",
        resource_id: str | None = None,
    ) -> CreditResult:
        """Add purchased tokens once per external payment reference."""

        if amount <= 0:
            raise ValueError(f"Credit amount must be > 0, got {amount}")
        if not external_ref:
            raise ValueError("Credit requires an external payment reference.")

        now = utc_now()
        with Session(self.engine) as session:
            existing = session.exec(
                select(LedgerActivity).where(LedgerActivity.external_ref == external_ref),
            ).one_or_none()
            if existing is not None:
                logger.info("Payment %s already processed; skipping credit", external_ref)
                return CreditResult(balance=self._balance(session), applied=False)

            result = session.exec(
                sa_update(AppUser)
                .where(col(AppUser.user_id) == self.user_id)
                .values(
                    token_balance=col(AppUser.token_balance) + amount,
                    total_tokens_purchased=col(AppUser.total_tokens_purchased) + amount,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise AccountNotFoundError(self.user_id)

            balance = self._balance(session)
            session.add(
                LedgerActivity(
                    activity_id=str(uuid4()),
                    user_id=self.user_id,
                    activity_type=ActivityType.TOKEN_PURCHASE.value,
                    description=description,
                    tokens_used=-amount,
                    token_balance_after=balance,
                    resource_id=resource_id,
                    external_ref=external_ref,
                    status="completed",
                    created_at=now,
                ),
            )
            try:
                session.commit()
            except IntegrityError:
                # A concurrent delivery of the same payment committed first.
                session.rollback()
                logger.info("Payment %s credited concurrently; skipping", external_ref)
                return CreditResult(balance=self.get_balance(), applied=False)

        logger.info("Credited %d tokens to %s (balance=%d)", amount, self.user_id, balance)
        return CreditResult(balance=balance, applied=True)

    def get_balance(self) -> int:
        with Session(self.engine) as session:
            return self._balance(session)

    def get_account(self) -> AccountBalance:
        with Session(self.engine) as session:
            user = session.exec(
                select(AppUser).where(AppUser.user_id == self.user_id),
            ).one_or_none()
        if user is None:
            raise AccountNotFoundError(self.user_id)
        return AccountBalance(
            user_id=user.user_id,
            token_balance=user.token_balance,
            total_tokens_used=user.total_tokens_used,
            total_tokens_purchased=user.total_tokens_purchased,
        )

    def list_activities(self, *, limit: int = 50) -> list[LedgerActivityView]:
        """Most recent activity rows first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(LedgerActivity)
                .where(LedgerActivity.user_id == self.user_id)
                .order_by(col(LedgerActivity.created_at).desc())
                .limit(limit),
            ).all()
        return [_to_activity_view(row) for row in rows]

    def _balance(self, session: Session) -> int:
        balance = session.exec(
            select(AppUser.token_balance).where(AppUser.user_id == self.user_id),
        ).one_or_none()
        if balance is None:
            raise AccountNotFoundError(self.user_id)
        return balance


def _activity_value(activity_type: ActivityType | str) -> str:
    if isinstance(activity_type, ActivityType):
        return activity_type.value
    return activity_type


def _to_activity_view(row: LedgerActivity) -> LedgerActivityView:
    return LedgerActivityView(
        activity_id=row.activity_id,
        user_id=row.user_id,
        activity_type=row.activity_type,
        description=row.description,
        tokens_used=row.tokens_used,
        token_balance_after=row.token_balance_after,
        resource_id=row.resource_id,
        external_ref=row.external_ref,
        status=row.status,
        ai_provider=row.ai_provider,
        created_at=to_utc_aware_datetime(row.created_at),
    )
