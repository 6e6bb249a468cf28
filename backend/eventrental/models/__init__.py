from eventrental.models.equipment import Equipment
from eventrental.models.event import Event, EventEquipment
from eventrental.models.registration import Registration
from eventrental.models.notification import Notification

__all__ = ["Equipment", "Event", "EventEquipment", "Registration", "Notification"]
