"""
User profile routes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from services.api.dao import MongoDBDAO, get_dao
from services.api.dependencies import get_timely_app
from services.timely.app import TimelyApp
from shared.schemas import UserProfile

logger = logging.getLogger(__name__)

router = APIRouter()


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    purpose: Optional[str] = None
    scheduling_preference: Optional[str] = None
    calendar_provider: Optional[str] = None
    is_onboarding_completed: Optional[bool] = None
    phone_number: Optional[str] = None
    avatar_url: Optional[str] = None


@router.get("", response_model=UserProfile)
async def get_profile(dao: MongoDBDAO = Depends(get_dao)):
    profile = await dao.get_user_profile()
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


@router.patch("", response_model=UserProfile)
async def update_profile(request: ProfileUpdateRequest, timely: TimelyApp = Depends(get_timely_app)):
    return await timely.update_profile(**request.model_dump(exclude_none=True))
