"""
Configuration management for the booking proxy.

This module provides centralized configuration using Pydantic settings
for type-safe environment variable management. The settings object is
frozen: it is built once at process start and handed to each component.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MANIFEST_PATH = Path(__file__).parent / "mcp.json"

# Business rule reasons returned by /check
WEEKEND_NOT_ALLOWED = "weekend_not_allowed"
DOUBLE_BOOKING = "double_booking"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Auth Gate Configuration
    api_key: Optional[str] = Field(default=None, alias="MCP_API_KEY")
    shared_secret_header: str = Field(default="x-api-key", alias="AUTH_SHARED_SECRET_HEADER")
    bearer_header: str = Field(default="authorization", alias="AUTH_BEARER_HEADER")
    token_header: str = Field(default="x-auth-token", alias="AUTH_TOKEN_HEADER")
    open_paths: List[str] = Field(
        default=["/", "/status", "/mcp.json", "/.well-known/mcp.json"],
        alias="OPEN_PATHS",
    )
    handshake_paths: List[str] = Field(
        default=["/__vf_mcp_check"], alias="HANDSHAKE_PATHS"
    )

    # Google Calendar Configuration
    gc_project_id: Optional[str] = Field(default=None, alias="GC_PROJECT_ID")
    gc_private_key: Optional[str] = Field(default=None, alias="GC_PRIVATE_KEY")
    gc_client_email: Optional[str] = Field(default=None, alias="GC_CLIENT_EMAIL")
    gc_calendar_id: str = Field(default="primary", alias="GC_CALENDAR_ID")
    gc_token_uri: str = Field(
        default="https://oauth2.googleapis.com/token", alias="GC_TOKEN_URI"
    )
    calendar_api_url: str = Field(
        default="https://www.googleapis.com/calendar/v3", alias="CALENDAR_API_URL"
    )
    calendar_api_timeout: float = Field(default=10.0, alias="CALENDAR_API_TIMEOUT")
    calendar_timezone: str = Field(default="Pacific/Auckland", alias="CALENDAR_TIMEZONE")

    # Reservation Configuration
    reservation_holds_enabled: bool = Field(default=True, alias="RESERVATION_HOLDS_ENABLED")
    reservation_ttl_seconds: int = Field(
        default=300, ge=1, le=3600, alias="RESERVATION_TTL_SECONDS"
    )

    # Application Configuration
    manifest_path: Path = Field(default=DEFAULT_MANIFEST_PATH, alias="MANIFEST_PATH")
    cors_allow_origins: List[str] = Field(default=["*"], alias="CORS_ALLOW_ORIGINS")
    service_banner: str = Field(
        default="Dentist MCP Calendar Backend Running", alias="SERVICE_BANNER"
    )
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    @field_validator("gc_private_key", mode="before")
    @classmethod
    def unescape_private_key(cls, v: Optional[str]) -> Optional[str]:
        """Private keys pasted into env files carry literal \\n sequences."""
        if v is None:
            return None
        return v.replace("\\n", "\n")

    @property
    def credential_headers(self) -> List[str]:
        """Header names accepted by the auth gate, in lookup order."""
        names = [self.shared_secret_header, self.bearer_header, self.token_header]
        return [name.lower() for name in names if name]

    @property
    def has_calendar_credentials(self) -> bool:
        return bool(self.gc_private_key and self.gc_client_email)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Only the module-level application uses this; components receive
    their settings explicitly.
    """
    return Settings()
