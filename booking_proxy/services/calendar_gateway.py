"""
Calendar Gateway - Client for the Google Calendar v3 API.

All reads and writes against the single booking calendar go through
this client. It keeps one pooled async HTTP client and refreshes the
service-account access token lazily.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from loguru import logger

from booking_proxy.config import Settings
from booking_proxy.models.booking import CalendarEvent

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"


class CalendarGatewayError(Exception):
    """
    Raised when the calendar service cannot complete a request.

    ``status_code`` and ``detail`` hold what the upstream returned; they
    are meant for logs, never for API callers.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


class CalendarGateway:
    """
    Async client for one Google calendar.

    Implements connection pooling for efficient concurrent requests.
    Credentials and transport can be injected for testing.
    """

    def __init__(
        self,
        settings: Settings,
        credentials: Optional[Any] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._credentials = credentials
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def _events_path(self) -> str:
        calendar_id = quote(self.settings.gc_calendar_id, safe="")
        return f"/calendars/{calendar_id}/events"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.calendar_api_url,
                timeout=httpx.Timeout(self.settings.calendar_api_timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _build_credentials(self) -> service_account.Credentials:
        if not self.settings.has_calendar_credentials:
            raise CalendarGatewayError("Calendar credentials are not configured")
        info = {
            "type": "service_account",
            "project_id": self.settings.gc_project_id,
            "private_key": self.settings.gc_private_key,
            "client_email": self.settings.gc_client_email,
            "token_uri": self.settings.gc_token_uri,
        }
        try:
            return service_account.Credentials.from_service_account_info(
                info, scopes=[CALENDAR_SCOPE]
            )
        except ValueError as e:
            raise CalendarGatewayError(
                "Calendar credentials are invalid", detail=str(e)
            ) from e

    async def _auth_headers(self) -> Dict[str, str]:
        """Return a bearer header, refreshing the access token if needed."""
        async with self._refresh_lock:
            if self._credentials is None:
                self._credentials = self._build_credentials()
            if not self._credentials.valid:
                logger.debug("Refreshing calendar access token")
                try:
                    # google-auth refresh is blocking
                    await asyncio.to_thread(self._credentials.refresh, Request())
                except GoogleAuthError as e:
                    raise CalendarGatewayError(
                        "Calendar authentication failed", detail=str(e)
                    ) from e
            return {"Authorization": f"Bearer {self._credentials.token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body (empty for 204)."""
        client = await self._get_client()
        headers = await self._auth_headers()

        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Calendar API {method} {path} returned {e.response.status_code}: "
                f"{e.response.text}"
            )
            raise CalendarGatewayError(
                f"Calendar API returned {e.response.status_code}",
                status_code=e.response.status_code,
                detail=e.response.text,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Request error calling calendar API {method} {path}: {e}")
            raise CalendarGatewayError(
                "Calendar API unreachable", detail=str(e)
            ) from e

        try:
            return response.json() if response.content else {}
        except ValueError as e:
            logger.error(f"Calendar API {method} {path} returned a non-JSON body: {e}")
            raise CalendarGatewayError(
                "Calendar API returned an unreadable response",
                status_code=response.status_code,
                detail=response.text,
            ) from e

    async def list_events(
        self, time_min: datetime, time_max: datetime
    ) -> List[Dict[str, Any]]:
        """
        List events intersecting a time range.

        Recurring events are expanded to single instances and results
        are ordered by start time.

        Args:
            time_min: Lower bound (exclusive) for an event's end time
            time_max: Upper bound (exclusive) for an event's start time

        Returns:
            List of event resources
        """
        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        body = await self._request("GET", self._events_path, params=params)
        items = body.get("items", [])

        logger.debug(f"Found {len(items)} events between {time_min} and {time_max}")
        return items

    async def insert_event(self, event: CalendarEvent) -> Dict[str, Any]:
        """
        Create an event.

        Returns:
            The created event resource, including its assigned id
        """
        created = await self._request(
            "POST", self._events_path, json=event.to_resource()
        )
        logger.info(f"Created calendar event {created.get('id')}")
        return created

    async def patch_event(self, event_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update to an event and return the updated resource."""
        path = f"{self._events_path}/{quote(event_id, safe='')}"
        updated = await self._request("PATCH", path, json=changes)
        logger.info(f"Updated calendar event {event_id}")
        return updated

    async def delete_event(self, event_id: str) -> None:
        """Delete an event."""
        path = f"{self._events_path}/{quote(event_id, safe='')}"
        await self._request("DELETE", path)
        logger.info(f"Deleted calendar event {event_id}")
