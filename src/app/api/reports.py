from fastapi import APIRouter

from app.core.deps import ReportsServiceDep
from app.models.report import DailyReportRequest, DailyReportResponse

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/daily", response_model=DailyReportResponse)
def generate_daily_report(
    body: DailyReportRequest,
    reports_service: ReportsServiceDep,
) -> DailyReportResponse:
    return reports_service.generate_daily_report(body)
