"""
Data models for the booking proxy.
"""

from .booking import (
    AvailabilityResult,
    CalendarEvent,
    EventTime,
    ReservationHold,
    TimeRange,
)
from .patient import PatientInfo

__all__ = [
    "AvailabilityResult",
    "CalendarEvent",
    "EventTime",
    "PatientInfo",
    "ReservationHold",
    "TimeRange",
]
