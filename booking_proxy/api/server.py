"""
Booking Proxy API Server.

A FastAPI service that fronts a Google calendar with an API-key gate,
a weekend rule, a double-booking check and short-lived reservation
tokens.
"""

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from booking_proxy import __version__
from booking_proxy.api.auth import AuthGateMiddleware
from booking_proxy.config import Settings, get_settings
from booking_proxy.logging import configure_logging
from booking_proxy.models.booking import AvailabilityResult, TimeRange
from booking_proxy.models.patient import PatientInfo
from booking_proxy.services.appointments import AppointmentManager
from booking_proxy.services.availability import AvailabilityEngine
from booking_proxy.services.calendar_gateway import CalendarGateway, CalendarGatewayError
from booking_proxy.services.reservations import (
    NO_RESERVATION_TOKEN,
    ReservationError,
    ReservationStore,
)

# ============================================================================
# Data Models
# ============================================================================


def _interval(payload: TimeRange) -> TimeRange:
    """Strip request fields, leaving the bare slot."""
    return TimeRange(start=payload.start, end=payload.end)


class CheckRequest(TimeRange):
    """Request to check a slot."""


class CreateAppointmentRequest(TimeRange):
    """Request to book a previously checked slot."""

    token: Optional[str] = Field(default=None, description="Reservation token from /check")
    title: str = Field(default="Appointment", description="Event title")
    patient: PatientInfo = Field(default_factory=PatientInfo)


class UpdateAppointmentRequest(TimeRange):
    """Request to move an appointment."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId", min_length=1)


class DeleteAppointmentRequest(BaseModel):
    """Request to cancel an appointment."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId", min_length=1)


class CreateAppointmentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    event_id: Optional[str] = Field(default=None, alias="eventId")


class UpdateAppointmentResponse(BaseModel):
    success: bool
    event: Dict[str, Any]


class DeleteAppointmentResponse(BaseModel):
    success: bool


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _gateway_failure(operation: str, exc: CalendarGatewayError) -> JSONResponse:
    """Log upstream detail and answer with a terse 500."""
    logger.error(
        f"{operation} failed: {exc.message} "
        f"(upstream status={exc.status_code}, detail={exc.detail})"
    )
    return _error_response(f"{operation} failed", status.HTTP_500_INTERNAL_SERVER_ERROR)


def _describe_errors(errors: List[Dict[str, Any]]) -> List[str]:
    described = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        prefix = f"{'.'.join(loc)}: " if loc else ""
        described.append(f"{prefix}{error.get('msg', 'invalid value')}")
    return described


def _invalid_request(errors: List[Dict[str, Any]]) -> JSONResponse:
    return JSONResponse(
        {"error": "Invalid request", "detail": _describe_errors(errors)},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed bodies as 400 rather than FastAPI's default 422."""
    logger.info(f"Rejected malformed request to {request.url.path}")
    return _invalid_request(exc.errors())


def load_manifest(path: Path) -> Dict[str, Any]:
    """Read the static capability manifest."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


# ============================================================================
# Dependencies
# ============================================================================


def get_availability_engine(request: Request) -> AvailabilityEngine:
    return request.app.state.availability


def get_appointment_manager(request: Request) -> AppointmentManager:
    return request.app.state.appointments


# ============================================================================
# API Endpoints
# ============================================================================

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
async def banner(request: Request):
    """Service banner."""
    return request.app.state.settings.service_banner


@router.get("/status")
async def status_check():
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/mcp.json")
@router.get("/.well-known/mcp.json")
async def manifest(request: Request):
    """Serve the capability manifest."""
    return JSONResponse(request.app.state.manifest)


@router.post(
    "/check",
    response_model=AvailabilityResult,
    response_model_exclude_none=True,
)
async def check_availability(
    payload: CheckRequest,
    engine: AvailabilityEngine = Depends(get_availability_engine),
):
    """
    Check whether a slot can be booked.

    Weekend and double-booked slots are normal outcomes reported with
    available=false and a reason. A free slot comes back with a
    reservation token for /create.
    """
    try:
        return await engine.check_availability(_interval(payload))
    except CalendarGatewayError as e:
        return _gateway_failure("Availability check", e)


@router.post("/create", response_model=CreateAppointmentResponse)
async def create_appointment(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    appointments: AppointmentManager = Depends(get_appointment_manager),
):
    """
    Book a slot with a reservation token.

    The token is checked before the rest of the body is validated.
    """
    payload = payload or {}
    if not payload.get("token"):
        return _error_response(NO_RESERVATION_TOKEN, status.HTTP_400_BAD_REQUEST)

    try:
        request = CreateAppointmentRequest.model_validate(payload)
    except ValidationError as e:
        return _invalid_request(e.errors())

    try:
        event_id = await appointments.create_appointment(
            token=request.token,
            title=request.title,
            time_range=_interval(request),
            patient=request.patient,
        )
    except ReservationError as e:
        logger.info(f"Refused booking at {request.start}: {e.message}")
        return _error_response(e.message, status.HTTP_400_BAD_REQUEST)
    except CalendarGatewayError as e:
        return _gateway_failure("Create appointment", e)

    return CreateAppointmentResponse(success=True, event_id=event_id)


@router.post("/update", response_model=UpdateAppointmentResponse)
async def update_appointment(
    payload: UpdateAppointmentRequest,
    appointments: AppointmentManager = Depends(get_appointment_manager),
):
    """Move an appointment to a new time."""
    try:
        event = await appointments.update_appointment(
            payload.event_id, _interval(payload)
        )
    except CalendarGatewayError as e:
        return _gateway_failure("Update appointment", e)

    return UpdateAppointmentResponse(success=True, event=event)


@router.post("/delete", response_model=DeleteAppointmentResponse)
async def delete_appointment(
    payload: DeleteAppointmentRequest,
    appointments: AppointmentManager = Depends(get_appointment_manager),
):
    """Cancel an appointment."""
    try:
        await appointments.delete_appointment(payload.event_id)
    except CalendarGatewayError as e:
        return _gateway_failure("Delete appointment", e)

    return DeleteAppointmentResponse(success=True)


# ============================================================================
# FastAPI Application
# ============================================================================


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[CalendarGateway] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration; read from the environment when omitted
        gateway: Calendar client; built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    gateway = gateway or CalendarGateway(settings)

    reservations = None
    if settings.reservation_holds_enabled:
        reservations = ReservationStore(ttl_seconds=settings.reservation_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        configure_logging(settings.log_level)
        logger.info(f"Starting booking proxy for calendar {settings.gc_calendar_id}")
        if not settings.api_key:
            logger.error("MCP_API_KEY is not configured; protected routes will fail")
        yield
        # Shutdown
        await gateway.close()
        logger.info("Shutting down booking proxy")

    app = FastAPI(
        title="Booking Proxy API",
        description="Appointment booking in front of a Google calendar",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.manifest = load_manifest(settings.manifest_path)
    app.state.reservations = reservations
    app.state.availability = AvailabilityEngine(gateway, reservations)
    app.state.appointments = AppointmentManager(
        gateway, settings.calendar_timezone, reservations
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_middleware(AuthGateMiddleware, settings=settings)
    # Added last so it wraps the auth gate and answers preflights first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", *settings.credential_headers],
    )
    app.include_router(router)
    return app


app = create_app()


# ============================================================================
# Run Server
# ============================================================================


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the booking proxy."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "booking_proxy.api.server:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=False,
        workers=1,  # reservation holds live in process memory
        loop="uvloop",
        http="httptools",
    )


if __name__ == "__main__":
    run_server()
