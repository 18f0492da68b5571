"""Profile API: plan and usage counter shown on the dashboard."""

from typing import Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from sheetgenius.api.deps import get_profile_store
from sheetgenius.core.errors import NotFoundError
from sheetgenius.features.plans.service import quota_for, remaining_for
from sheetgenius.features.profiles.service import ProfileStore

router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    plan: str
    usage_count: int = Field(alias="usageCount")
    limit: Optional[int] = None  # None = unlimited
    remaining: Optional[int] = None


@router.get("/{user_id}", response_model=ProfileResponse, response_model_by_alias=True)
def get_profile(user_id: str, request: Request, store: ProfileStore = Depends(get_profile_store)):
    profile = store.get(user_id)
    if profile is None:
        raise NotFoundError(f"Profile {user_id} not found")

    settings = request.app.state.settings
    return {
        "userId": profile.user_id,
        "plan": profile.plan.value,
        "usageCount": profile.usage_count,
        "limit": quota_for(profile.plan, settings),
        "remaining": remaining_for(profile.plan, profile.usage_count, settings),
    }
