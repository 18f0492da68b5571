"""
Profile store.

Row-store access for user profiles:
- get / get_or_create (rows are created implicitly at signup)
- apply_billing (webhook reconciliation write, last write wins)
- record_usage (compare-and-swap increment guarded by the plan quota)
- reset_usage (monthly reset job)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, ContextManager, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sheetgenius.core.database import get_db_session, profiles
from sheetgenius.core.errors import PersistenceError, QuotaExceededError, UsageConflictError
from sheetgenius.models.plan import Plan
from sheetgenius.models.profile import UserProfile

logger = logging.getLogger("sheetgenius.profiles")

MAX_CAS_ATTEMPTS = 3


def _row_to_profile(row) -> UserProfile:
    return UserProfile(
        user_id=row.id,
        plan=Plan(row.plan),
        usage_count=row.usage_count,
        stripe_customer_id=row.stripe_customer_id,
        stripe_subscription_id=row.stripe_subscription_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class ProfileStore:
    """SQLAlchemy-backed access to the profiles table."""

    def __init__(self, session_scope: Callable[[], ContextManager[Session]] = get_db_session):
        self._session_scope = session_scope

    def get(self, user_id: str) -> Optional[UserProfile]:
        try:
            with self._session_scope() as session:
                row = session.execute(select(profiles).where(profiles.c.id == user_id)).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load profile: {e}") from e
        return _row_to_profile(row) if row else None

    def get_or_create(self, user_id: str) -> UserProfile:
        existing = self.get(user_id)
        if existing:
            return existing

        now = datetime.now(timezone.utc)
        try:
            with self._session_scope() as session:
                session.execute(
                    insert(profiles).values(
                        id=user_id,
                        plan=Plan.FREE.value,
                        usage_count=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            # Created concurrently by another request
            pass
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create profile: {e}") from e

        created = self.get(user_id)
        if created is None:
            raise PersistenceError(f"Profile {user_id} missing after insert")
        return created

    def apply_billing(
        self,
        user_id: str,
        plan: Plan,
        customer_id: Optional[str],
        subscription_id: Optional[str],
    ) -> UserProfile:
        """
        Write the plan and billing references for a user.

        Updates the existing row, or inserts one when the user has no profile
        yet. No version check: the last write wins.

        Raises:
            PersistenceError: If the row store rejects the write
        """
        now = datetime.now(timezone.utc)
        values = {
            "plan": Plan(plan).value,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": subscription_id,
            "updated_at": now,
        }
        try:
            with self._session_scope() as session:
                result = session.execute(
                    update(profiles).where(profiles.c.id == user_id).values(**values)
                )
                if result.rowcount == 0:
                    session.execute(
                        insert(profiles).values(id=user_id, usage_count=0, created_at=now, **values)
                    )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update profile {user_id}: {e}") from e

        profile = self.get(user_id)
        if profile is None:
            raise PersistenceError(f"Profile {user_id} missing after update")
        return profile

    def record_usage(self, user_id: str, limit: Optional[int]) -> int:
        """
        Increment usage_count by one if the user is still under ``limit``.

        Compare-and-swap on the observed usage_count; concurrent increments
        cause a re-read, never a lost update.

        Returns:
            The new usage_count

        Raises:
            QuotaExceededError: The observed count already reached the limit
            UsageConflictError: The swap lost MAX_CAS_ATTEMPTS times in a row
            PersistenceError: Missing profile or row store failure
        """
        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            try:
                with self._session_scope() as session:
                    row = session.execute(
                        select(profiles.c.usage_count).where(profiles.c.id == user_id)
                    ).first()
                    if row is None:
                        raise PersistenceError(f"Profile {user_id} not found")

                    observed = row.usage_count
                    if limit is not None and observed >= limit:
                        raise QuotaExceededError(
                            f"Usage limit reached ({observed}/{limit}). Upgrade your plan to keep generating."
                        )

                    result = session.execute(
                        update(profiles)
                        .where(profiles.c.id == user_id, profiles.c.usage_count == observed)
                        .values(usage_count=observed + 1, updated_at=datetime.now(timezone.utc))
                    )
                    if result.rowcount == 1:
                        return observed + 1
            except SQLAlchemyError as e:
                raise PersistenceError(f"Failed to record usage for {user_id}: {e}") from e

            logger.info("usage.cas_retry", extra={"user_id": user_id, "attempt": attempt})

        raise UsageConflictError("Too many concurrent generations, try again")

    def reset_usage(self, plan: Optional[Plan] = None) -> int:
        """Zero usage_count for every profile, or only those on ``plan``."""
        stmt = update(profiles).values(usage_count=0, updated_at=datetime.now(timezone.utc))
        if plan is not None:
            stmt = stmt.where(profiles.c.plan == Plan(plan).value)
        try:
            with self._session_scope() as session:
                result = session.execute(stmt)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to reset usage: {e}") from e
