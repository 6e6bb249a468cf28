"""
Pydantic schemas for registration (ticket) responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from eventrental.models.enums import RegistrationStatus


class RegistrationResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: RegistrationStatus
    ticket_number: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CancellationResponse(BaseModel):
    message: str
    registration: RegistrationResponse
    promoted: Optional[RegistrationResponse] = None
