"""
Meeting routes.
"""
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends

from services.api.dependencies import get_timely_app
from services.timely.app import TimelyApp
from shared.errors import AuthenticationRequired
from shared.schemas import Meeting

logger = logging.getLogger(__name__)

router = APIRouter()


def _signed_in(timely: TimelyApp) -> None:
    if not timely.auth.is_signed_in:
        raise AuthenticationRequired()


@router.get("", response_model=List[Meeting])
async def list_meetings(timely: TimelyApp = Depends(get_timely_app)):
    """All meetings of the signed-in user, ordered by date."""
    _signed_in(timely)
    return timely.store.meetings


@router.get("/upcoming", response_model=List[Meeting])
async def upcoming_meetings(timely: TimelyApp = Depends(get_timely_app)):
    _signed_in(timely)
    return timely.store.upcoming_meetings()


@router.get("/stats")
async def meeting_stats(timely: TimelyApp = Depends(get_timely_app)) -> Dict[str, int]:
    _signed_in(timely)
    return timely.store.monthly_stats()


@router.post("/refresh", response_model=List[Meeting])
async def refresh(timely: TimelyApp = Depends(get_timely_app)):
    """Reload every collection from the remote store."""
    await timely.store.load_all()
    return timely.store.meetings
