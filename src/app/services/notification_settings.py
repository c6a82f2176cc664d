"""Organization-scoped LINE notification settings, with the one-shot legacy import."""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Protocol

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db.schema import NotificationSettings
from app.models.notification import (
    NotificationSettingsData,
    NotificationSettingsUpdate,
)
from app.services.base import BaseService

logger = logging.getLogger(__name__)

# camelCase keys of the old browser-stored settings document
LEGACY_FIELD_MAP = {
    "enabled": "enabled",
    "scheduledTime": "scheduled_time",
    "selectedMembers": "recipients",
    "channelAccessToken": "credential",
    "groupId": "destination",
}


class LegacySettingsSource(Protocol):
    """Where settings lived before they were stored per organization."""

    def read(self, organization_id: str) -> Optional[dict[str, Any]]: ...


class LegacySettingsFile:
    """Reads an exported `lineMessagingApiSettings` JSON document."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()

    def read(self, organization_id: str) -> Optional[dict[str, Any]]:
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Could not read legacy settings %s: %s", self._path, e)
            return None
        if not isinstance(data, dict):
            logger.error("Legacy settings %s is not a JSON object", self._path)
            return None
        # A document keyed by organization wins over a single flat document
        scoped = data.get(organization_id)
        return scoped if isinstance(scoped, dict) else data


def _legacy_values(raw: dict[str, Any]) -> dict[str, Any]:
    values = {new: raw[old] for old, new in LEGACY_FIELD_MAP.items() if old in raw}
    try:
        update = NotificationSettingsUpdate(**values)
    except ValidationError as e:
        invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
        logger.warning("Dropping invalid legacy settings fields: %s", sorted(invalid))
        update = NotificationSettingsUpdate(
            **{k: v for k, v in values.items() if k not in invalid}
        )
    result = update.model_dump(exclude_none=True)
    last_sent = raw.get("lastSentDate")
    if last_sent:
        try:
            result["last_sent_date"] = date.fromisoformat(str(last_sent))
        except ValueError:
            logger.warning("Ignoring legacy lastSentDate %r", last_sent)
    if raw.get("lastSentDateTime"):
        result["last_sent_datetime"] = str(raw["lastSentDateTime"])
    return result


class NotificationSettingsService(BaseService):
    def __init__(
        self,
        session: Session,
        organization_id: str,
        legacy_source: Optional[LegacySettingsSource] = None,
    ) -> None:
        super().__init__(session, organization_id)
        self._legacy_source = legacy_source

    def _find(self) -> Optional[NotificationSettings]:
        return (
            self.session.query(NotificationSettings)
            .filter(NotificationSettings.organization_id == self.organization_id)
            .first()
        )

    def get_or_create_settings(self) -> NotificationSettings:
        """Return the organization's row, creating it on first read.

        The first read imports legacy settings when a source has some; once
        the row exists the import never runs again.
        """
        row = self._find()
        if row:
            return row
        row = NotificationSettings(organization_id=self.organization_id, recipients=[])
        legacy = self._legacy_source.read(self.organization_id) if self._legacy_source else None
        if legacy:
            for key, value in _legacy_values(legacy).items():
                setattr(row, key, value)
            logger.info(
                "Imported legacy LINE settings for organization %s", self.organization_id
            )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def load(self) -> NotificationSettingsData:
        return NotificationSettingsData.model_validate(self.get_or_create_settings())

    def update_settings(self, data: NotificationSettingsUpdate) -> NotificationSettingsData:
        row = self.get_or_create_settings()
        update_data = data.model_dump(exclude_unset=True)
        merged = NotificationSettingsData.model_validate(row).model_copy(update=update_data)
        if merged.enabled:
            self._validate_deliverable(merged)
        for key, value in update_data.items():
            setattr(row, key, value)
        self.session.commit()
        self.session.refresh(row)
        return NotificationSettingsData.model_validate(row)

    @staticmethod
    def _validate_deliverable(data: NotificationSettingsData) -> None:
        if not data.credential:
            raise HTTPException(status_code=400, detail="Channel access token not configured")
        if not data.destination:
            raise HTTPException(status_code=400, detail="Group ID not configured")
        if not data.recipients:
            raise HTTPException(status_code=400, detail="Select at least one member to report on")

    def mark_sent(self, now: datetime) -> NotificationSettingsData:
        """Record a confirmed send; the day marker gates further sends today."""
        row = self.get_or_create_settings()
        row.last_sent_date = now.date()
        row.last_sent_datetime = now.strftime("%Y/%m/%d %H:%M")
        self.session.commit()
        self.session.refresh(row)
        return NotificationSettingsData.model_validate(row)
