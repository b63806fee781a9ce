"""
Appointment Manager - Creates, moves and cancels calendar appointments.
"""

from typing import Any, Dict, Optional

from loguru import logger

from booking_proxy.models.booking import CalendarEvent, EventTime, TimeRange
from booking_proxy.models.patient import PatientInfo
from booking_proxy.services.calendar_gateway import CalendarGateway
from booking_proxy.services.reservations import (
    NO_RESERVATION_TOKEN,
    ReservationError,
    ReservationStore,
)


class AppointmentManager:
    """
    Turns reservation tokens into calendar events.

    With a ReservationStore the token must name an unexpired hold on
    exactly the requested interval, and is consumed by a successful
    booking. Without one only its presence is checked.
    """

    def __init__(
        self,
        gateway: CalendarGateway,
        time_zone: str,
        reservations: Optional[ReservationStore] = None,
    ):
        self._gateway = gateway
        self._time_zone = time_zone
        self._reservations = reservations

    async def create_appointment(
        self,
        token: Optional[str],
        title: str,
        time_range: TimeRange,
        patient: PatientInfo,
    ) -> str:
        """
        Book an appointment.

        Args:
            token: Reservation token from a prior availability check
            title: Event title
            time_range: Slot to book
            patient: Contact details for the event description

        Returns:
            The calendar's id for the new event

        Raises:
            ReservationError: if the token is missing or not honoured
            CalendarGatewayError: if the calendar rejected the insert
        """
        if not token:
            raise ReservationError(NO_RESERVATION_TOKEN)

        hold = None
        if self._reservations is not None:
            hold = await self._reservations.claim(token, time_range)

        event = CalendarEvent.for_appointment(title, time_range, patient, self._time_zone)
        booked = False
        try:
            created = await self._gateway.insert_event(event)
            booked = True
        finally:
            if hold is not None:
                if booked:
                    await self._reservations.commit(hold.token)
                else:
                    # token stays usable for a retry until it expires
                    await self._reservations.release(hold.token)

        event_id = created.get("id")
        logger.info(f"Booked '{title}' at {time_range.start} as event {event_id}")
        return event_id

    async def update_appointment(
        self, event_id: str, time_range: TimeRange
    ) -> Dict[str, Any]:
        """Move an appointment and return the calendar's updated event."""
        changes = {
            "start": EventTime(date_time=time_range.start, time_zone=self._time_zone),
            "end": EventTime(date_time=time_range.end, time_zone=self._time_zone),
        }
        body = {
            key: value.model_dump(mode="json", by_alias=True)
            for key, value in changes.items()
        }
        return await self._gateway.patch_event(event_id, body)

    async def delete_appointment(self, event_id: str) -> None:
        """Cancel an appointment."""
        await self._gateway.delete_event(event_id)
