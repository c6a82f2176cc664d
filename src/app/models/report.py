from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DailyReportRequest(BaseModel):
    """Render the daily report for an organization on a given day."""

    organization_id: str
    date: Optional[str] = None  # ISO date "YYYY-MM-DD" or null for today
    members: Optional[list[str]] = None  # null: the organization's configured recipients
    generated_at: Optional[datetime] = None  # stamped into the footer when given


class DailyReportResponse(BaseModel):
    """Rendered report text with the resolved date and members."""

    date: str
    members: list[str]
    report: str
