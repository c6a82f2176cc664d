"""LINE notification settings API schemas."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.db.schema import DEFAULT_SCHEDULED_TIME
from app.services.send_gate import parse_time_of_day


def _validate_scheduled_time(value: str) -> str:
    value = value.strip()
    try:
        parse_time_of_day(value)
    except ValueError:
        raise ValueError("scheduled_time must be a 24-hour time (HH:MM)") from None
    # Normalize "9:05" to "09:05"
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def _dedupe_members(members: list[str]) -> list[str]:
    seen: list[str] = []
    for member in members:
        name = member.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


class NotificationSettingsData(BaseModel):
    """Detached view of one organization's settings row."""

    model_config = ConfigDict(from_attributes=True)

    organization_id: str
    enabled: bool = False
    scheduled_time: str = DEFAULT_SCHEDULED_TIME
    recipients: list[str] = Field(default_factory=list)
    credential: str = ""
    destination: str = ""
    last_sent_date: Optional[date] = None
    last_sent_datetime: Optional[str] = None

    @property
    def is_deliverable(self) -> bool:
        """Credential, destination and at least one recipient are present."""
        return bool(self.credential and self.destination and self.recipients)


class NotificationSettingsResponse(BaseModel):
    """Settings returned by GET/PATCH; the credential itself is never echoed."""

    organization_id: str
    enabled: bool
    scheduled_time: str
    recipients: list[str]
    has_credential: bool
    destination: str
    last_sent_date: Optional[date] = None
    last_sent_datetime: Optional[str] = None

    @classmethod
    def from_data(cls, data: NotificationSettingsData) -> NotificationSettingsResponse:
        return cls(
            organization_id=data.organization_id,
            enabled=data.enabled,
            scheduled_time=data.scheduled_time,
            recipients=list(data.recipients),
            has_credential=bool(data.credential),
            destination=data.destination,
            last_sent_date=data.last_sent_date,
            last_sent_datetime=data.last_sent_datetime,
        )


class NotificationSettingsUpdate(BaseModel):
    """Partial settings for PATCH /api/organizations/{id}/line-settings."""

    enabled: Optional[bool] = None
    scheduled_time: Optional[str] = Field(default=None, examples=["18:30"])
    recipients: Optional[list[str]] = None
    credential: Optional[str] = None
    destination: Optional[str] = None

    @field_validator("scheduled_time")
    @classmethod
    def scheduled_time_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _validate_scheduled_time(v)

    @field_validator("recipients")
    @classmethod
    def recipients_unique(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return None
        return _dedupe_members(v)

    @field_validator("credential", "destination")
    @classmethod
    def strip_secret(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip()


class SendTestResponse(BaseModel):
    """Outcome of a test message sent with the stored settings."""

    success: bool
    message: str
