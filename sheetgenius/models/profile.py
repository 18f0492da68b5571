"""
sheetgenius/models/profile.py

UserProfile model: a user's plan, usage counter and billing references.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from sheetgenius.models.plan import Plan


class UserProfile(BaseModel):
    """
    One row per user, keyed by the auth provider's user id.

    Constraint: usage_count never goes negative.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: Plan = Plan.FREE
    usage_count: int = Field(default=0, ge=0)
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
