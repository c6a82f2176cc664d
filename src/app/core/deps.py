"""Central place for FastAPI dependencies and shared *Dep type aliases."""

from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.services.line_relay import LinePushClient, LineRelayClient
from app.services.notification_settings import (
    LegacySettingsFile,
    LegacySettingsSource,
    NotificationSettingsService,
)
from app.services.reports import ReportsService

SessionDep = Annotated[Session, Depends(get_db)]


def build_legacy_source() -> Optional[LegacySettingsSource]:
    """Legacy settings file from config, if one is configured."""
    if settings.legacy_settings_path is None:
        return None
    return LegacySettingsFile(settings.legacy_settings_path)


def build_relay_client() -> LineRelayClient:
    return LineRelayClient(
        settings.relay_endpoint_url, timeout=settings.relay_timeout_seconds
    )


def get_notification_settings_service(
    organization_id: str, session: SessionDep
) -> NotificationSettingsService:
    """Provide NotificationSettingsService for the organization in the path."""
    return NotificationSettingsService(
        session, organization_id, legacy_source=build_legacy_source()
    )


def get_reports_service(session: SessionDep) -> ReportsService:
    """Provide ReportsService for this request."""
    return ReportsService(session=session, legacy_source=build_legacy_source())


def get_line_push_client() -> LinePushClient:
    """Upstream LINE client used by the relay endpoint."""
    return LinePushClient(timeout=settings.relay_timeout_seconds)


def get_relay_client() -> LineRelayClient:
    """Relay client used for test sends."""
    return build_relay_client()


NotificationSettingsServiceDep = Annotated[
    NotificationSettingsService, Depends(get_notification_settings_service)
]
ReportsServiceDep = Annotated[ReportsService, Depends(get_reports_service)]
LinePushClientDep = Annotated[LinePushClient, Depends(get_line_push_client)]
RelayClientDep = Annotated[LineRelayClient, Depends(get_relay_client)]
