"""Unit tests for the daily report scheduler."""

import asyncio
import itertools
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import sessionmaker

from app.db.schema import NotificationSettings, TaskPriority, TaskStatus
from app.models.line import RelayResult
from app.models.notification import NotificationSettingsUpdate
from app.services.notification_settings import NotificationSettingsService
from app.services.scheduler import DailyReportScheduler, TickOutcome, minute_bucket

ORG = "org-4d"
DAY = date(2025, 10, 29)


def _at(hour: int, minute: int, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


class FakeRelay:
    """Records sends and answers with queued results (success once the queue is empty)."""

    def __init__(self, *results: RelayResult) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, str, str]] = []

    async def send(self, credential: str, destination: str, text: str) -> RelayResult:
        self.calls.append((credential, destination, text))
        if self.results:
            return self.results.pop(0)
        return RelayResult(success=True)


class BlockingRelay(FakeRelay):
    """Holds every send until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def send(self, credential: str, destination: str, text: str) -> RelayResult:
        self.started.set()
        await self.release.wait()
        return await super().send(credential, destination, text)


class ExplodingRelay(FakeRelay):
    async def send(self, credential: str, destination: str, text: str) -> RelayResult:
        await super().send(credential, destination, text)
        raise RuntimeError("relay exploded")


def _configure(session_factory: sessionmaker, **overrides) -> None:
    values = {
        "enabled": True,
        "scheduled_time": "09:00",
        "recipients": ["Alice"],
        "credential": "channel-token",
        "destination": "C0ffee",
    }
    values.update(overrides)
    with session_factory() as session:
        NotificationSettingsService(session, ORG).update_settings(
            NotificationSettingsUpdate(**values)
        )


def _stored(session_factory: sessionmaker):
    with session_factory() as session:
        return NotificationSettingsService(session, ORG).load()


@pytest.fixture
def alice_day(seed_activity) -> None:
    seed_activity(
        organization_id=ORG,
        tasks=[
            {
                "name": "Write API spec",
                "assignee": "Alice",
                "status": TaskStatus.ACTIVE,
                "priority": TaskPriority.HIGH,
                "progress": 40,
            }
        ],
        routines=[
            {"name": "Morning standup", "assignee": "Alice", "completed": True, "scheduled_date": DAY}
        ],
    )


def test_sends_once_per_day(session_factory: sessionmaker, alice_day: None) -> None:
    """Due at 09:01: report sent and day marked; 09:02 the same day sends nothing."""
    _configure(session_factory)
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.SENT
    assert len(relay.calls) == 1
    credential, destination, text = relay.calls[0]
    assert (credential, destination) == ("channel-token", "C0ffee")
    assert "Alice" in text
    assert "Write API spec" in text
    assert "🎉 ルーティン達成率: 100% (1/1件)" in text

    stored = _stored(session_factory)
    assert stored.last_sent_date == DAY
    assert stored.last_sent_datetime == "2025/10/29 09:01"

    assert asyncio.run(scheduler.tick(_at(9, 2))) == TickOutcome.NOT_DUE
    assert len(relay.calls) == 1


def test_no_organization_loads_nothing() -> None:
    def no_session():
        raise AssertionError("settings must not be loaded without an organization")

    relay = FakeRelay()
    scheduler = DailyReportScheduler(None, no_session, relay)

    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.NO_ORGANIZATION
    assert relay.calls == []


def test_disabled_by_default(session_factory: sessionmaker) -> None:
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(20, 0))) == TickOutcome.DISABLED
    assert relay.calls == []


@pytest.mark.parametrize(
    ("column", "value"),
    [("credential", ""), ("destination", ""), ("recipients", [])],
)
def test_incomplete_config_is_skipped(session_factory: sessionmaker, column: str, value) -> None:
    _configure(session_factory)
    with session_factory() as session:
        row = session.query(NotificationSettings).filter_by(organization_id=ORG).one()
        setattr(row, column, value)
        session.commit()
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(9, 30))) == TickOutcome.INCOMPLETE_CONFIG
    assert relay.calls == []


def test_not_due_before_scheduled_time(session_factory: sessionmaker) -> None:
    _configure(session_factory)
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(8, 59))) == TickOutcome.NOT_DUE
    assert relay.calls == []


def test_missed_minute_fires_later_the_same_day(session_factory: sessionmaker) -> None:
    _configure(session_factory)
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(17, 45))) == TickOutcome.SENT


def test_failure_keeps_marker_and_retries_next_minute(session_factory: sessionmaker) -> None:
    _configure(session_factory)
    relay = FakeRelay(RelayResult(success=False, error="LINE down"))
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.FAILED
    assert _stored(session_factory).last_sent_date is None

    # timer jitter: a second tick inside the same minute does not resend
    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.SAME_MINUTE
    assert len(relay.calls) == 1

    assert asyncio.run(scheduler.tick(_at(9, 2))) == TickOutcome.SENT
    assert len(relay.calls) == 2
    assert _stored(session_factory).last_sent_date == DAY


def test_clock_stepping_back_after_failure_retries(session_factory: sessionmaker) -> None:
    """A backwards clock step lands in a new minute bucket; only the gate decides."""
    _configure(session_factory)
    relay = FakeRelay(RelayResult(success=False, error="timeout"))
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(9, 5))) == TickOutcome.FAILED
    assert asyncio.run(scheduler.tick(_at(9, 4))) == TickOutcome.SENT
    assert asyncio.run(scheduler.tick(_at(8, 59))) == TickOutcome.NOT_DUE


def test_clock_stepping_before_schedule_after_failure_waits(session_factory: sessionmaker) -> None:
    _configure(session_factory)
    relay = FakeRelay(RelayResult(success=False, error="timeout"))
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.FAILED
    assert asyncio.run(scheduler.tick(_at(8, 59))) == TickOutcome.NOT_DUE
    assert len(relay.calls) == 1


def test_next_day_sends_again(session_factory: sessionmaker) -> None:
    _configure(session_factory)
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)

    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.SENT
    next_day = DAY + timedelta(days=1)
    assert asyncio.run(scheduler.tick(_at(9, 1, next_day))) == TickOutcome.SENT
    assert _stored(session_factory).last_sent_date == next_day


def test_repeated_hour_on_dst_fall_back(session_factory: sessionmaker) -> None:
    """The repeated 01:30 after a DST fall-back shares a minute bucket with the first one."""
    _configure(session_factory, scheduled_time="01:00")
    relay = FakeRelay(RelayResult(success=False, error="timeout"))
    scheduler = DailyReportScheduler(ORG, session_factory, relay)
    ny = ZoneInfo("America/New_York")
    first = datetime(2025, 11, 2, 1, 30, tzinfo=ny)
    second = datetime(2025, 11, 2, 1, 30, fold=1, tzinfo=ny)
    assert first.utcoffset() != second.utcoffset()
    assert minute_bucket(first) == minute_bucket(second)

    assert asyncio.run(scheduler.tick(first)) == TickOutcome.FAILED
    assert asyncio.run(scheduler.tick(second)) == TickOutcome.SAME_MINUTE
    assert asyncio.run(scheduler.tick(second + timedelta(minutes=1))) == TickOutcome.SENT


def test_skipped_wall_time_on_dst_spring_forward(session_factory: sessionmaker) -> None:
    """A schedule inside the skipped hour fires on the first tick after the jump."""
    _configure(session_factory, scheduled_time="02:30")
    relay = FakeRelay()
    scheduler = DailyReportScheduler(ORG, session_factory, relay)
    ny = ZoneInfo("America/New_York")

    assert asyncio.run(scheduler.tick(datetime(2025, 3, 9, 1, 59, tzinfo=ny))) == TickOutcome.NOT_DUE
    assert asyncio.run(scheduler.tick(datetime(2025, 3, 9, 3, 0, tzinfo=ny))) == TickOutcome.SENT


def test_tick_while_sending_is_skipped(session_factory: sessionmaker) -> None:
    _configure(session_factory)

    async def scenario() -> tuple[TickOutcome, TickOutcome, int]:
        relay = BlockingRelay()
        scheduler = DailyReportScheduler(ORG, session_factory, relay)
        first = asyncio.create_task(scheduler.tick(_at(9, 1)))
        await relay.started.wait()
        assert scheduler.is_evaluating
        second = await scheduler.tick(_at(9, 2))
        relay.release.set()
        return await first, second, len(relay.calls)

    first, second, calls = asyncio.run(scenario())
    assert first == TickOutcome.SENT
    assert second == TickOutcome.BUSY
    assert calls == 1


def test_start_ticks_immediately_and_stop_cancels_timer(session_factory: sessionmaker) -> None:
    _configure(session_factory)

    async def scenario() -> tuple[int, bool]:
        relay = FakeRelay()
        scheduler = DailyReportScheduler(
            ORG, session_factory, relay, clock=lambda: _at(9, 1), interval_seconds=0.01
        )
        scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.1)
        await scheduler.stop()
        return len(relay.calls), scheduler.is_running

    calls, running = asyncio.run(scenario())
    assert calls == 1
    assert running is False


def test_stop_lets_in_flight_send_finish(session_factory: sessionmaker) -> None:
    _configure(session_factory)

    async def scenario() -> None:
        relay = BlockingRelay()
        scheduler = DailyReportScheduler(
            ORG, session_factory, relay, clock=lambda: _at(9, 1), interval_seconds=60
        )
        scheduler.start()
        await relay.started.wait()
        await scheduler.stop()
        relay.release.set()
        for _ in range(50):
            if not scheduler.is_evaluating:
                break
            await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert _stored(session_factory).last_sent_date == DAY


def test_errors_inside_a_tick_do_not_stop_the_timer(session_factory: sessionmaker) -> None:
    _configure(session_factory)
    minutes = itertools.count(1)

    async def scenario() -> tuple[int, bool]:
        relay = ExplodingRelay()
        scheduler = DailyReportScheduler(
            ORG,
            session_factory,
            relay,
            clock=lambda: _at(9, 0) + timedelta(minutes=next(minutes)),
            interval_seconds=0.01,
        )
        scheduler.start()
        await asyncio.sleep(0.1)
        running = scheduler.is_running
        await scheduler.stop()
        return len(relay.calls), running

    calls, running = asyncio.run(scenario())
    assert running is True
    assert calls >= 2
    assert _stored(session_factory).last_sent_date is None


class TrackingSessions:
    """Session factory that records the opening thread and how many sessions are open."""

    def __init__(self, factory: sessionmaker) -> None:
        self._factory = factory
        self.open = 0
        self.threads: list[int] = []

    @contextmanager
    def __call__(self):
        self.threads.append(threading.get_ident())
        self.open += 1
        try:
            with self._factory() as session:
                yield session
        finally:
            self.open -= 1


def test_database_work_stays_off_the_event_loop(
    session_factory: sessionmaker, alice_day: None
) -> None:
    """Queries run in worker threads and no session is held during the relay send."""
    _configure(session_factory)
    sessions = TrackingSessions(session_factory)
    open_during_send: list[int] = []

    class SessionCheckingRelay(FakeRelay):
        async def send(self, credential: str, destination: str, text: str) -> RelayResult:
            open_during_send.append(sessions.open)
            return await super().send(credential, destination, text)

    relay = SessionCheckingRelay()
    scheduler = DailyReportScheduler(ORG, sessions, relay)

    assert asyncio.run(scheduler.tick(_at(9, 1))) == TickOutcome.SENT
    assert open_during_send == [0]
    assert len(sessions.threads) == 3
    assert threading.get_ident() not in sessions.threads
    assert _stored(session_factory).last_sent_date == DAY
