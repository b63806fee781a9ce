"""
Auth Gate Middleware.

Checks the caller's credential before any route runs. Accepted header
names, public paths and handshake paths all come from settings:

- OPTIONS requests and open paths pass without inspection
- Handshake paths, and protected requests carrying neither a credential
  nor a body, are answered with {"ok": true} so the calling platform's
  discovery checks succeed
- Everything else needs a credential matching the shared secret
"""

import json
import secrets
from enum import Enum
from typing import List, Mapping

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from booking_proxy.config import Settings

BEARER_PREFIX = "bearer "


class AuthDecision(str, Enum):
    ALLOW = "allow"
    HANDSHAKE = "handshake"
    UNAUTHORIZED = "unauthorized"
    MISCONFIGURED = "misconfigured"


def is_empty_body(body: bytes) -> bool:
    """True for no bytes, or JSON that decodes to an empty object, array or null."""
    if not body.strip():
        return True
    try:
        parsed = json.loads(body)
    except ValueError:
        return False
    return parsed is None or (isinstance(parsed, (dict, list)) and not parsed)


def presented_credentials(headers: Mapping[str, str], settings: Settings) -> List[str]:
    """
    Collect the credential values a request carries, one per accepted header.

    A bearer header without the Bearer scheme yields an empty candidate,
    which never matches but still counts as a presented credential.
    """
    lowered = {name.lower(): value for name, value in headers.items()}
    bearer_header = settings.bearer_header.lower()

    candidates = []
    for name in settings.credential_headers:
        value = lowered.get(name)
        if not value:
            continue
        if name == bearer_header:
            if value[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
                value = value[len(BEARER_PREFIX):].strip()
            else:
                value = ""
        candidates.append(value)
    return candidates


def evaluate_request(
    method: str,
    path: str,
    headers: Mapping[str, str],
    body: bytes,
    settings: Settings,
) -> AuthDecision:
    """Decide whether a request may proceed."""
    if method.upper() == "OPTIONS":
        return AuthDecision.ALLOW
    if path in settings.open_paths:
        return AuthDecision.ALLOW
    if path in settings.handshake_paths:
        return AuthDecision.HANDSHAKE

    candidates = presented_credentials(headers, settings)
    if not candidates and is_empty_body(body):
        return AuthDecision.HANDSHAKE

    if not settings.api_key:
        return AuthDecision.MISCONFIGURED

    expected = settings.api_key.encode()
    for candidate in candidates:
        if candidate and secrets.compare_digest(candidate.encode(), expected):
            return AuthDecision.ALLOW
    return AuthDecision.UNAUTHORIZED


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Applies evaluate_request to every inbound request."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        body = await request.body()
        decision = evaluate_request(
            request.method, request.url.path, request.headers, body, self.settings
        )

        if decision is AuthDecision.ALLOW:
            return await call_next(request)

        if decision is AuthDecision.HANDSHAKE:
            logger.debug(f"Answering handshake on {request.url.path}")
            return JSONResponse({"ok": True})

        if decision is AuthDecision.MISCONFIGURED:
            logger.error("MCP_API_KEY is not configured; rejecting protected request")
            return JSONResponse({"error": "Server misconfigured"}, status_code=500)

        logger.warning(f"Unauthorized {request.method} {request.url.path}")
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
