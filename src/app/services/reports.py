"""Report preview: render the daily LINE report for a date without sending it."""

from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.report import DailyReportRequest, DailyReportResponse
from app.services.activity import ActivityService
from app.services.daily_report import generate_report
from app.services.notification_settings import (
    LegacySettingsSource,
    NotificationSettingsService,
)


class ReportsService:
    def __init__(
        self,
        session: Session,
        legacy_source: Optional[LegacySettingsSource] = None,
    ) -> None:
        self._session = session
        self._legacy_source = legacy_source

    @staticmethod
    def _parse_report_date(raw: str | None) -> date:
        if not raw:
            return date.today()
        try:
            return date.fromisoformat(raw)
        except ValueError:
            raise HTTPException(
                status_code=422, detail="Invalid date format; use YYYY-MM-DD"
            ) from None

    def _members(self, request: DailyReportRequest) -> list[str]:
        if request.members is not None:
            return [m for m in request.members if m.strip()]
        store = NotificationSettingsService(
            self._session, request.organization_id, legacy_source=self._legacy_source
        )
        return list(store.load().recipients)

    def generate_daily_report(self, request: DailyReportRequest) -> DailyReportResponse:
        report_date = self._parse_report_date(request.date)
        members = self._members(request)
        activity = ActivityService(self._session, request.organization_id)
        report = generate_report(
            members,
            report_date,
            activity.get_task_snapshots(),
            activity.get_routine_snapshots(report_date),
            generated_at=request.generated_at,
        )
        return DailyReportResponse(
            date=report_date.isoformat(),
            members=members,
            report=report,
        )
