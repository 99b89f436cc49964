"""
Meeting type routes.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from services.api.dependencies import get_timely_app
from services.timely.app import TimelyApp
from shared.schemas import MeetingPlatform, MeetingType

logger = logging.getLogger(__name__)

router = APIRouter()


class MeetingTypeRequest(BaseModel):
    name: str = Field(..., min_length=1)
    duration: int = Field(..., gt=0)
    platform: MeetingPlatform
    description: str = ""


@router.get("", response_model=List[MeetingType])
async def list_meeting_types(timely: TimelyApp = Depends(get_timely_app)):
    return timely.store.meeting_types


@router.post("", response_model=MeetingType, status_code=status.HTTP_201_CREATED)
async def create_meeting_type(request: MeetingTypeRequest, timely: TimelyApp = Depends(get_timely_app)):
    meeting_type = MeetingType(**request.model_dump())
    return await timely.store.add_meeting_type(meeting_type)
