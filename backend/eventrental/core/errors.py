"""
Domain error taxonomy for reservation operations.

Every failure the coordinator can produce has its own class with a stable
machine-readable code, so callers can tell "sold out" from "already
registered" from "not enough units" without parsing messages. The API layer
renders them through `reservation_error_handler`.
"""

from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class ReservationError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "reservation_error"

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        body = {"error": self.code, "detail": self.detail}
        if self.context:
            body["context"] = self.context
        return body


class ValidationError(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotAuthorized(ReservationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_authorized"


class EventNotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "event_not_found"

    def __init__(self, event_id: int):
        super().__init__(f"Event {event_id} not found", event_id=event_id)


class EquipmentNotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "equipment_not_found"

    def __init__(self, equipment_id: int):
        super().__init__(f"Equipment {equipment_id} not found", equipment_id=equipment_id)


class RegistrationNotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "registration_not_found"

    def __init__(self, registration_id: int):
        super().__init__(f"Registration {registration_id} not found", registration_id=registration_id)


class ReservationLineNotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "reservation_line_not_found"

    def __init__(self, event_id: int, equipment_id: int):
        super().__init__(
            f"Event {event_id} has no reservation for equipment {equipment_id}",
            event_id=event_id,
            equipment_id=equipment_id,
        )


class InsufficientStock(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, equipment_id: int, requested: int, available: int):
        super().__init__(
            f"Not enough units of equipment {equipment_id}. "
            f"Requested: {requested}, Available: {available}",
            equipment_id=equipment_id,
            requested=requested,
            available=available,
        )
        self.equipment_id = equipment_id


class EquipmentUnavailable(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "equipment_unavailable"

    def __init__(self, equipment_id: int, equipment_status: str):
        super().__init__(
            f"Equipment {equipment_id} is not approved for rental (status: {equipment_status})",
            equipment_id=equipment_id,
            status=equipment_status,
        )


class EquipmentInUse(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "equipment_in_use"

    def __init__(self, equipment_id: int, event_ids: list[int]):
        super().__init__(
            f"Equipment {equipment_id} is reserved by active events",
            equipment_id=equipment_id,
            event_ids=event_ids,
        )


class EventFull(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "event_full"

    def __init__(self, event_id: int):
        super().__init__(f"Event {event_id} is full and its waitlist is closed", event_id=event_id)


class AlreadyRegistered(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_registered"

    def __init__(self, event_id: int, user_id: int):
        super().__init__("You are already registered for this event", event_id=event_id, user_id=user_id)


class AlreadyCancelled(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_cancelled"

    def __init__(self, registration_id: int):
        super().__init__("Registration is already cancelled", registration_id=registration_id)


class TicketCollision(ReservationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "ticket_collision"

    def __init__(self, attempts: int):
        super().__init__(
            "Could not allocate a unique ticket number. Please try again.",
            attempts=attempts,
        )


class PersistenceFailure(ReservationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "persistence_failure"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"{operation} failed and was rolled back. Please try again.",
            operation=operation,
        )
        self.cause = cause


class DataIntegrityError(ReservationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "data_integrity_error"


async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
