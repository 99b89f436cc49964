"""
Meeting draft routes: compose a meeting, create its link and schedule it.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from services.api.dependencies import get_timely_app
from services.timely.app import TimelyApp
from shared.schemas import Meeting, MeetingLinkResponse, MeetingPlatform

logger = logging.getLogger(__name__)

router = APIRouter()


class DraftRequest(BaseModel):
    """Fields of a draft; omitted fields are left unchanged on update."""
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)
    platform: Optional[MeetingPlatform] = None
    participants: Optional[List[str]] = None
    meeting_type: Optional[str] = None
    timezone: Optional[str] = None


class ScheduleRequest(BaseModel):
    send_invitations: bool = True


class ScheduleResponse(BaseModel):
    meeting: Meeting
    invitations_sent: List[str]
    invitations_failed: Dict[str, str]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_draft(request: DraftRequest, timely: TimelyApp = Depends(get_timely_app)) -> Dict[str, Any]:
    draft = timely.new_draft(**request.model_dump(exclude_none=True))
    return draft.to_dict()


@router.get("/{draft_id}")
async def get_draft(draft_id: str, timely: TimelyApp = Depends(get_timely_app)) -> Dict[str, Any]:
    return timely.get_draft(draft_id).to_dict()


@router.patch("/{draft_id}")
async def update_draft(
    draft_id: str, request: DraftRequest, timely: TimelyApp = Depends(get_timely_app)
) -> Dict[str, Any]:
    draft = timely.update_draft(draft_id, **request.model_dump(exclude_none=True))
    return draft.to_dict()


@router.delete("/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_draft(draft_id: str, timely: TimelyApp = Depends(get_timely_app)):
    timely.discard_draft(draft_id)


@router.post("/{draft_id}/link", response_model=MeetingLinkResponse)
async def create_link(draft_id: str, timely: TimelyApp = Depends(get_timely_app)):
    return await timely.create_link(draft_id)


@router.post("/{draft_id}/schedule", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def schedule(
    draft_id: str,
    request: Optional[ScheduleRequest] = None,
    timely: TimelyApp = Depends(get_timely_app),
):
    send = request.send_invitations if request else True
    outcome = await timely.schedule_meeting(draft_id, send_invitations=send)
    return ScheduleResponse(
        meeting=outcome.meeting,
        invitations_sent=outcome.invitations.sent,
        invitations_failed=outcome.invitations.failed,
    )
