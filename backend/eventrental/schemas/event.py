"""
Pydantic schemas for event-related request/response validation.

Business rules (non-empty equipment list, duplicate lines, positive
quantities, future date) are checked by the reservation coordinator so that
they surface as validation_error responses rather than schema errors.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class EquipmentLine(BaseModel):
    equipment_id: int
    quantity: int


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: datetime
    location: str = Field(..., min_length=1, max_length=255)
    capacity: int
    waitlist_enabled: bool = True
    equipment: list[EquipmentLine] = Field(default_factory=list)


class EquipmentLinesAdd(BaseModel):
    lines: list[EquipmentLine]


class EquipmentQuantityUpdate(BaseModel):
    quantity: int


class EquipmentLineResponse(BaseModel):
    equipment_id: int
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    date: datetime
    location: str
    organizer_id: int
    capacity: int
    confirmed_count: int
    waitlist_count: int
    waitlist_enabled: bool
    available_spots: int
    equipment: list[EquipmentLineResponse]
    equipment_cost: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class EventSummary(BaseModel):
    event_id: int
    title: str
    capacity: int
    confirmed: int
    waitlist_length: int
    available_spots: int
    is_full: bool
    equipment: list[EquipmentLineResponse]
    equipment_cost: Decimal


class EventDeletedResponse(BaseModel):
    message: str
    event_id: int
    released_lines: int
    cancelled_registrations: int
