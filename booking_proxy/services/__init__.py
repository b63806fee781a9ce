"""
Services layer for the booking proxy.
"""

from .appointments import AppointmentManager
from .availability import AvailabilityEngine
from .calendar_gateway import CalendarGateway, CalendarGatewayError
from .reservations import ReservationError, ReservationStore

__all__ = [
    "AppointmentManager",
    "AvailabilityEngine",
    "CalendarGateway",
    "CalendarGatewayError",
    "ReservationError",
    "ReservationStore",
]
