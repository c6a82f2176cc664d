"""Daily report scheduler: polls once a minute and sends the report when due."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from app.models.line import RelayResult
from app.models.notification import NotificationSettingsData
from app.services.activity import ActivityService
from app.services.daily_report import generate_report
from app.services.notification_settings import (
    LegacySettingsSource,
    NotificationSettingsService,
)
from app.services.send_gate import should_send

logger = logging.getLogger(__name__)


class RelaySender(Protocol):
    async def send(self, credential: str, destination: str, text: str) -> RelayResult: ...


class TickOutcome(str, Enum):
    BUSY = "busy"
    NO_ORGANIZATION = "no_organization"
    DISABLED = "disabled"
    INCOMPLETE_CONFIG = "incomplete_config"
    NOT_DUE = "not_due"
    SAME_MINUTE = "same_minute"
    SENT = "sent"
    FAILED = "failed"


def minute_bucket(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M")


class DailyReportScheduler:
    """
    Sends one team report per day for a single organization.

    Every tick loads the settings, checks the send gate, renders the report
    and sends it through the relay. A send that succeeds moves the
    organization's last-sent date to today; a failed one leaves it alone so
    the next tick tries again.
    """

    def __init__(
        self,
        organization_id: Optional[str],
        session_factory: Callable[[], Session],
        relay_client: RelaySender,
        *,
        clock: Callable[[], datetime] = datetime.now,
        interval_seconds: float = 60.0,
        legacy_source: Optional[LegacySettingsSource] = None,
    ) -> None:
        self.organization_id = organization_id
        self._session_factory = session_factory
        self._relay_client = relay_client
        self._clock = clock
        self.interval_seconds = interval_seconds
        self._legacy_source = legacy_source

        self._in_flight = False
        self._last_attempt_bucket: Optional[str] = None
        self._timer: Optional[asyncio.Task] = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def is_evaluating(self) -> bool:
        return self._in_flight

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def tick(self, now: Optional[datetime] = None) -> TickOutcome:
        """Run one evaluation; skipped outright while another is in flight."""
        if self._in_flight:
            logger.debug("Previous tick still sending, skipping")
            return TickOutcome.BUSY
        if not self.organization_id:
            return TickOutcome.NO_ORGANIZATION

        self._in_flight = True
        try:
            return await self._evaluate(now or self._clock())
        finally:
            self._in_flight = False

    async def _evaluate(self, now: datetime) -> TickOutcome:
        settings = await asyncio.to_thread(self._load_settings)

        if not settings.enabled:
            return TickOutcome.DISABLED
        if not settings.is_deliverable:
            logger.warning(
                "LINE report for %s skipped: token, group ID or members not set",
                self.organization_id,
            )
            return TickOutcome.INCOMPLETE_CONFIG
        if not should_send(settings.scheduled_time, settings.last_sent_date, now):
            return TickOutcome.NOT_DUE

        bucket = minute_bucket(now)
        if bucket == self._last_attempt_bucket:
            return TickOutcome.SAME_MINUTE
        self._last_attempt_bucket = bucket

        report = await asyncio.to_thread(self._build_report, settings.recipients, now)

        logger.info("Sending daily report for %s", self.organization_id)
        result = await self._relay_client.send(
            settings.credential, settings.destination, report
        )
        if not result.success:
            logger.error("Daily report send failed: %s", result.error)
            return TickOutcome.FAILED

        await asyncio.to_thread(self._mark_sent, now)
        logger.info("Daily report sent for %s", self.organization_id)
        return TickOutcome.SENT

    # Blocking database steps; each runs in a worker thread with its own session

    def _settings_store(self, session: Session) -> NotificationSettingsService:
        return NotificationSettingsService(
            session, self.organization_id, legacy_source=self._legacy_source
        )

    def _load_settings(self) -> NotificationSettingsData:
        with self._session_factory() as session:
            return self._settings_store(session).load()

    def _build_report(self, recipients: list[str], now: datetime) -> str:
        today = now.date()
        with self._session_factory() as session:
            activity = ActivityService(session, self.organization_id)
            tasks = activity.get_task_snapshots()
            routines = activity.get_routine_snapshots(today)
        return generate_report(recipients, today, tasks, routines, generated_at=now)

    def _mark_sent(self, now: datetime) -> None:
        with self._session_factory() as session:
            self._settings_store(session).mark_sent(now)

    async def _run_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Daily report tick failed")

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self._run_tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _run(self) -> None:
        while True:
            self._spawn_tick()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Tick now, then every `interval_seconds`. Needs a running event loop."""
        if self.is_running:
            return
        logger.info(
            "Starting daily report scheduler for %s (every %ss)",
            self.organization_id,
            self.interval_seconds,
        )
        self._timer = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel future ticks; a send already in flight still finishes."""
        if self._timer is None:
            return
        self._timer.cancel()
        try:
            await self._timer
        except asyncio.CancelledError:
            pass
        self._timer = None
        logger.info("Daily report scheduler stopped")
