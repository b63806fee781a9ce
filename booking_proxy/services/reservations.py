"""
Reservation holds.

An in-memory table of short-lived holds keyed by interval. A hold is
recorded when /check finds a slot clear and stays until /create has
written the booking, so two callers can never both be told the same
interval is free.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional
from uuid import uuid4

from loguru import logger

from booking_proxy.models.booking import ReservationHold, TimeRange

NO_RESERVATION_TOKEN = "No reservation token"
INVALID_RESERVATION_TOKEN = "Invalid or expired reservation token"
RESERVATION_MISMATCH = "Reservation does not match requested time"


class ReservationError(Exception):
    """A reservation token was missing or could not be honoured."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def new_token() -> str:
    """Generate an opaque 128-bit reservation token."""
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReservationStore:
    """
    In-memory hold table with lock-guarded operations.

    Holds live only in this process; run a single worker.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or _utcnow
        self._holds: Dict[str, ReservationHold] = {}
        self._lock = asyncio.Lock()

    # Public accessor for testing
    @property
    def holds(self) -> Dict[str, ReservationHold]:
        """Access to the holds dictionary."""
        return self._holds

    async def hold(self, time_range: TimeRange) -> Optional[ReservationHold]:
        """
        Place a hold on an interval.

        Returns the new hold, or None if an unexpired hold already
        overlaps the interval.
        """
        async with self._lock:
            now = self._clock()
            self._cleanup_expired_holds(now)

            for existing in self._holds.values():
                if existing.time_range.overlaps(time_range):
                    logger.info(
                        f"Interval {time_range.start} - {time_range.end} "
                        f"overlaps an active hold"
                    )
                    return None

            hold = ReservationHold(
                token=new_token(),
                time_range=time_range,
                expires_at=now + self._ttl,
            )
            self._holds[hold.token] = hold
            return hold

    async def claim(self, token: str, time_range: TimeRange) -> ReservationHold:
        """
        Mark a hold as claimed while its booking is written.

        The hold stays in the table, so the interval remains blocked for
        other callers, but the token cannot be claimed a second time.
        Follow up with commit() or release().

        Raises:
            ReservationError: if the token is unknown, expired, already
                claimed, or was issued for a different interval
        """
        async with self._lock:
            self._cleanup_expired_holds(self._clock())

            hold = self._holds.get(token)
            if hold is None or hold.claimed:
                raise ReservationError(INVALID_RESERVATION_TOKEN)
            if (
                hold.time_range.start != time_range.start
                or hold.time_range.end != time_range.end
            ):
                raise ReservationError(RESERVATION_MISMATCH)

            hold.claimed = True
            return hold

    async def commit(self, token: str) -> None:
        """Drop a claimed hold once its booking exists in the calendar."""
        async with self._lock:
            self._holds.pop(token, None)

    async def release(self, token: str) -> None:
        """Clear the claim on a hold whose booking failed."""
        async with self._lock:
            hold = self._holds.get(token)
            if hold is None:
                return
            if hold.is_expired(self._clock()):
                del self._holds[token]
            else:
                hold.claimed = False

    def _cleanup_expired_holds(self, now: datetime) -> None:
        """Remove expired holds. Caller must hold the lock."""
        # claimed holds go through commit or release instead
        expired = [
            token
            for token, hold in self._holds.items()
            if hold.is_expired(now) and not hold.claimed
        ]
        for token in expired:
            del self._holds[token]
