from eventrental.schemas.event import (
    EquipmentLine,
    EquipmentLinesAdd,
    EquipmentQuantityUpdate,
    EventCreate,
    EventResponse,
    EventSummary,
)
from eventrental.schemas.registration import RegistrationResponse, CancellationResponse
from eventrental.schemas.equipment import (
    EquipmentCreate,
    EquipmentStatusUpdate,
    EquipmentUpdate,
    EquipmentResponse,
    EquipmentCatalogResponse,
)

__all__ = [
    "EquipmentLine", "EquipmentLinesAdd", "EquipmentQuantityUpdate",
    "EventCreate", "EventResponse", "EventSummary",
    "RegistrationResponse", "CancellationResponse",
    "EquipmentCreate", "EquipmentUpdate", "EquipmentStatusUpdate", "EquipmentResponse", "EquipmentCatalogResponse",
]
