"""
Booking-related data models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_proxy.models.patient import PatientInfo


class TimeRange(BaseModel):
    """
    A candidate or existing appointment slot.

    Both ends are timezone-aware; naive values are read as UTC.
    """

    start: datetime = Field(description="Start of the slot")
    end: datetime = Field(description="End of the slot")

    @field_validator("start", "end")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self

    def overlaps(self, other: "TimeRange") -> bool:
        """Half-open interval intersection."""
        return self.start < other.end and other.start < self.end


class EventTime(BaseModel):
    """Start or end of a calendar event, pinned to a named timezone."""

    model_config = ConfigDict(populate_by_name=True)

    date_time: datetime = Field(alias="dateTime")
    time_zone: str = Field(alias="timeZone")


class CalendarEvent(BaseModel):
    """
    An appointment as sent to the calendar service.

    The remote id is assigned by the calendar on insert and is not
    part of this model.
    """

    summary: str = Field(description="Event title")
    description: str = Field(default="", description="Human-readable details")
    start: EventTime
    end: EventTime

    @classmethod
    def for_appointment(
        cls,
        title: str,
        time_range: TimeRange,
        patient: PatientInfo,
        time_zone: str,
    ) -> "CalendarEvent":
        return cls(
            summary=title,
            description=patient.description,
            start=EventTime(date_time=time_range.start, time_zone=time_zone),
            end=EventTime(date_time=time_range.end, time_zone=time_zone),
        )

    def to_resource(self) -> Dict[str, Any]:
        """Serialize to the calendar API's JSON resource shape."""
        return self.model_dump(mode="json", by_alias=True)


class ReservationHold(BaseModel):
    """A short-lived hold on an interval, identified by its token."""

    token: str = Field(description="Opaque reservation token")
    time_range: TimeRange
    expires_at: datetime
    claimed: bool = Field(default=False, description="A booking is in flight for this hold")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class AvailabilityResult(BaseModel):
    """
    Outcome of an availability check.

    A rejection is a normal result, not an error: it carries a reason
    and no token.
    """

    available: bool = Field(description="Whether the slot can be booked")
    reason: Optional[str] = Field(default=None, description="Why the slot was refused")
    token: Optional[str] = Field(default=None, description="Reservation token on success")
    expires_at: Optional[datetime] = Field(
        default=None, description="When the reservation hold lapses"
    )
