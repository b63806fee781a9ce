"""
Availability Engine - Decides whether a slot can be booked.

A slot is refused when it starts on a weekend or when the calendar
already has an event in it. A clear slot earns a reservation token
that /create must present.
"""

from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from booking_proxy.config import DOUBLE_BOOKING, WEEKEND_NOT_ALLOWED
from booking_proxy.models.booking import AvailabilityResult, TimeRange
from booking_proxy.services.calendar_gateway import CalendarGateway
from booking_proxy.services.reservations import ReservationStore, new_token

SATURDAY = 5


def is_weekend(moment: datetime) -> bool:
    """
    Check whether a moment falls on a Saturday or Sunday.

    The day is taken in UTC and in the moment's own offset; either one
    landing on a weekend closes the slot.
    """
    utc_day = moment.astimezone(timezone.utc).weekday()
    local_day = moment.weekday()
    return utc_day >= SATURDAY or local_day >= SATURDAY


class AvailabilityEngine:
    """
    Applies the weekend rule and the double-booking check.

    When a ReservationStore is supplied, issued tokens are backed by a
    hold on the interval. Without one the token is a bare random value.
    """

    def __init__(
        self,
        gateway: CalendarGateway,
        reservations: Optional[ReservationStore] = None,
    ):
        self._gateway = gateway
        self._reservations = reservations

    async def check_availability(self, time_range: TimeRange) -> AvailabilityResult:
        """
        Check whether an interval can be booked.

        Args:
            time_range: The candidate slot

        Returns:
            AvailabilityResult, with a token when the slot is free

        Raises:
            CalendarGatewayError: if the calendar could not be queried
        """
        if is_weekend(time_range.start):
            logger.info(f"Refusing weekend slot starting {time_range.start}")
            return AvailabilityResult(available=False, reason=WEEKEND_NOT_ALLOWED)

        events = await self._gateway.list_events(time_range.start, time_range.end)
        if events:
            logger.info(
                f"Slot {time_range.start} - {time_range.end} conflicts with "
                f"{len(events)} existing event(s)"
            )
            return AvailabilityResult(available=False, reason=DOUBLE_BOOKING)

        if self._reservations is None:
            return AvailabilityResult(available=True, token=new_token())

        hold = await self._reservations.hold(time_range)
        if hold is None:
            return AvailabilityResult(available=False, reason=DOUBLE_BOOKING)

        logger.info(f"Slot {time_range.start} - {time_range.end} held until {hold.expires_at}")
        return AvailabilityResult(
            available=True, token=hold.token, expires_at=hold.expires_at
        )
