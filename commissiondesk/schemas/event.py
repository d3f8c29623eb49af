"""
Outbox event schemas.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from commissiondesk.models.event import EventStatus


class EventResponse(BaseModel):
    id: int
    event_type: str
    subject_type: str
    subject_id: int
    payload: Optional[dict]
    status: EventStatus
    created_at: datetime
    dispatched_at: Optional[datetime]

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    items: List[EventResponse]
    total: int
