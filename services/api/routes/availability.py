"""
Availability routes.
"""
import logging
from datetime import datetime
from typing import Set

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from services.api.dependencies import get_timely_app
from services.timely.app import TimelyApp
from shared.errors import InvalidRequest
from shared.schemas import Availability, WeekDay

logger = logging.getLogger(__name__)

router = APIRouter()


class AvailabilityRequest(BaseModel):
    work_days: Set[WeekDay]
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"


@router.get("", response_model=Availability)
async def get_availability(timely: TimelyApp = Depends(get_timely_app)):
    return timely.store.availability


@router.put("", response_model=Availability)
async def replace_availability(request: AvailabilityRequest, timely: TimelyApp = Depends(get_timely_app)):
    try:
        availability = Availability(**request.model_dump())
    except ValueError as e:
        raise InvalidRequest(str(e))
    problems = availability.validate_for_save()
    if problems:
        raise InvalidRequest(" ".join(problems))
    return await timely.store.replace_availability(availability)


@router.get("/check")
async def check_slot(at: datetime = Query(...), timely: TimelyApp = Depends(get_timely_app)):
    """Whether an instant falls inside the working hours."""
    return {"at": at, "available": timely.store.is_time_slot_available(at)}
