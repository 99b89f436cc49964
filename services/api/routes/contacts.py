"""
Contact routes.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from services.api.dependencies import get_timely_app
from services.timely.app import TimelyApp
from shared.schemas import Contact

logger = logging.getLogger(__name__)

router = APIRouter()


class ContactRequest(BaseModel):
    name: str = ""
    email: str


@router.get("", response_model=List[Contact])
async def list_contacts(timely: TimelyApp = Depends(get_timely_app)):
    return timely.store.contacts


@router.post("", response_model=Contact, status_code=status.HTTP_201_CREATED)
async def add_contact(request: ContactRequest, timely: TimelyApp = Depends(get_timely_app)):
    return timely.store.add_contact(request.name, request.email)
