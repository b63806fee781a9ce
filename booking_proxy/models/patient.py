"""
Patient data models.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PatientInfo(BaseModel):
    """
    Patient contact details supplied with a booking.

    Values are free-form and only ever rendered into the event
    description, so nothing beyond whitespace trimming is applied.
    """

    name: Optional[str] = Field(default=None, description="Patient's full name")
    email: Optional[str] = Field(default=None, description="Patient's email address")
    phone: Optional[str] = Field(default=None, description="Patient's phone number")

    @field_validator("name", "email", "phone", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return str(v).strip()

    @property
    def description(self) -> str:
        """Render the calendar event description block."""
        return (
            f"Patient: {self.name or ''}\n"
            f"Email: {self.email or ''}\n"
            f"Phone: {self.phone or ''}"
        )
