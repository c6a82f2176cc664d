from fastapi import APIRouter, HTTPException

from app.core.deps import NotificationSettingsServiceDep, RelayClientDep
from app.models.notification import (
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
    SendTestResponse,
)

router = APIRouter(prefix="/organizations", tags=["settings"])


@router.get(
    "/{organization_id}/line-settings", response_model=NotificationSettingsResponse
)
def get_line_settings(
    settings_service: NotificationSettingsServiceDep,
) -> NotificationSettingsResponse:
    """Get LINE report settings; the first read creates the row (importing legacy settings)."""
    return NotificationSettingsResponse.from_data(settings_service.load())


@router.patch(
    "/{organization_id}/line-settings", response_model=NotificationSettingsResponse
)
def patch_line_settings(
    body: NotificationSettingsUpdate,
    settings_service: NotificationSettingsServiceDep,
) -> NotificationSettingsResponse:
    """Update LINE report settings (partial)."""
    return NotificationSettingsResponse.from_data(
        settings_service.update_settings(body)
    )


@router.post(
    "/{organization_id}/line-settings/test", response_model=SendTestResponse
)
async def send_test_message(
    settings_service: NotificationSettingsServiceDep,
    relay_client: RelayClientDep,
) -> SendTestResponse:
    """Send a fixed test message to the configured group."""
    current = settings_service.load()
    if not current.credential:
        raise HTTPException(status_code=400, detail="Channel access token not configured")
    if not current.destination:
        raise HTTPException(status_code=400, detail="Group ID not configured")

    result = await relay_client.send_test(
        current.credential, current.destination, current.recipients
    )
    if not result.success:
        raise HTTPException(status_code=502, detail=f"Test send failed: {result.error}")
    return SendTestResponse(success=True, message="Test message sent")
