"""
Pydantic schemas for the equipment catalog.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from eventrental.models.enums import EquipmentStatus


class EquipmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[str] = Field(None, max_length=50)
    unit_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    quantity: int = Field(..., ge=0, le=100000)


class EquipmentUpdate(BaseModel):
    """Catalog details a vendor may edit. Stock counts are not among them."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[str] = Field(None, max_length=50)
    unit_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    model_config = {"extra": "forbid"}

    @field_validator("name", "unit_price")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class EquipmentStatusUpdate(BaseModel):
    status: EquipmentStatus


class EquipmentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    category: Optional[str]
    vendor_id: int
    unit_price: Decimal
    quantity: int
    rented_count: int
    status: EquipmentStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class EquipmentCatalogResponse(BaseModel):
    items: list[EquipmentResponse]
    total: int
    cached: bool = False
