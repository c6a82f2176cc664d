"""Daily report text for the LINE group: one section per member.

Everything here is a pure function of its arguments so the same inputs always
render the same text.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Optional, Union

from app.db.schema import TaskPriority, TaskStatus
from app.models.activity import RoutineSnapshot, TaskSnapshot

DIVIDER = "━━━━━━━━━━━"
BRAND = "4次元PM"
NO_PROJECT_LABEL = "プロジェクト未設定"
NO_WORK_LINE = "担当タスクなし"

PRIORITY_ORDER: dict[TaskPriority, int] = {
    TaskPriority.URGENT: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}

PRIORITY_GLYPHS: dict[TaskPriority, str] = {
    TaskPriority.URGENT: "🔴",
    TaskPriority.HIGH: "🟠",
    TaskPriority.MEDIUM: "🟡",
    TaskPriority.LOW: "🟢",
}

ReportDate = Union[date, str]


def _as_date(value: ReportDate) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def priority_glyph(priority: Optional[TaskPriority]) -> str:
    """Glyph for a priority; anything unknown renders as low."""
    return PRIORITY_GLYPHS.get(priority, PRIORITY_GLYPHS[TaskPriority.LOW])


def _priority_rank(task: TaskSnapshot) -> int:
    return PRIORITY_ORDER.get(task.priority, PRIORITY_ORDER[TaskPriority.LOW])


def routine_rate(completed: int, total: int) -> int:
    """Completion percentage rounded half-up; 0 when there is nothing to do."""
    if total <= 0:
        return 0
    # Integer form of floor(100 * completed / total + 0.5)
    return (200 * completed + total) // (2 * total)


def routine_tier_glyph(rate: int) -> str:
    """Glyph for the routine line: 🎉 from 80%, 👍 from 50%, otherwise 💪."""
    if rate >= 80:
        return "🎉"
    if rate >= 50:
        return "👍"
    return "💪"


def _split_tasks(
    member: str, day: date, tasks: Iterable[TaskSnapshot]
) -> tuple[list[TaskSnapshot], list[TaskSnapshot], list[TaskSnapshot]]:
    completed: list[TaskSnapshot] = []
    active: list[TaskSnapshot] = []
    blocked: list[TaskSnapshot] = []
    for task in tasks:
        if task.assignee != member:
            continue
        if task.status == TaskStatus.COMPLETED:
            if task.completed_date == day:
                completed.append(task)
        elif task.status == TaskStatus.BLOCKED:
            blocked.append(task)
        else:
            active.append(task)
    return completed, active, blocked


def _group_by_project(
    completed: list[TaskSnapshot],
    active: list[TaskSnapshot],
    blocked: list[TaskSnapshot],
) -> dict[Optional[str], dict[str, list[TaskSnapshot]]]:
    groups: dict[Optional[str], dict[str, list[TaskSnapshot]]] = {}
    for bucket, items in (("completed", completed), ("active", active), ("blocked", blocked)):
        for task in items:
            group = groups.setdefault(
                task.project_name, {"completed": [], "active": [], "blocked": []}
            )
            group[bucket].append(task)
    return groups


def _project_progress(tasks: dict[str, list[TaskSnapshot]]) -> Optional[int]:
    for items in tasks.values():
        for task in items:
            if task.project_progress is not None:
                return task.project_progress
    return None


def _task_lines(title: str, tasks: list[TaskSnapshot], show_progress: bool) -> list[str]:
    if not tasks:
        return []
    lines = [f"{title} ({len(tasks)}件)"]
    for task in sorted(tasks, key=_priority_rank):
        line = f"  {priority_glyph(task.priority)} {task.name}"
        if show_progress:
            line += f" ({task.progress}%)"
            if task.due_date:
                line += f" 期限:{task.due_date.isoformat()}"
        lines.append(line)
    return lines


def _routine_lines(routines: list[RoutineSnapshot]) -> list[str]:
    if not routines:
        return []
    done = [r for r in routines if r.completed]
    pending = [r for r in routines if not r.completed]
    rate = routine_rate(len(done), len(routines))
    lines = [
        f"{routine_tier_glyph(rate)} ルーティン達成率: {rate}% ({len(done)}/{len(routines)}件)"
    ]
    for routine in pending:
        line = f"  ・未完了: {routine.name}"
        if routine.skip_reason:
            line += f" (スキップ: {routine.skip_reason})"
        lines.append(line)
    return lines


def generate_member_section(
    member: str,
    report_date: ReportDate,
    tasks: Sequence[TaskSnapshot],
    routines: Sequence[RoutineSnapshot],
) -> str:
    """Render one member's part of the daily report.

    Tasks are split into completed-today, active and blocked, grouped by
    project, followed by the routine completion rate for the day and a
    numeric summary. A member with nothing to report still gets a short
    section.
    """
    day = _as_date(report_date)
    completed, active, blocked = _split_tasks(member, day, tasks)
    member_routines = [
        r for r in routines if r.assignee == member and r.scheduled_date == day
    ]

    header = f"【{member}さん】"
    if not (completed or active or blocked or member_routines):
        return f"{header}\n{NO_WORK_LINE}\n"

    lines = [header]
    for project_name, group in _group_by_project(completed, active, blocked).items():
        progress = _project_progress(group)
        title = project_name or NO_PROJECT_LABEL
        if progress is not None:
            title += f" ({progress}%)"
        lines.append(f"📁 {title}")
        lines.extend(_task_lines("✅ 本日完了", group["completed"], show_progress=False))
        lines.extend(_task_lines("🔄 進行中", group["active"], show_progress=True))
        lines.extend(_task_lines("⚠️ ブロック中", group["blocked"], show_progress=False))
        lines.append("")

    routine_lines = _routine_lines(member_routines)
    if routine_lines:
        lines.extend(routine_lines)
        lines.append("")

    total = len(completed) + len(active) + len(blocked)
    counts = f"本日完了: {len(completed)}件 | 進行中: {len(active)}件"
    if blocked:
        counts += f" | ブロック: {len(blocked)}件"
    lines.append("📈 サマリー")
    lines.append(f"タスク総数: {total}件")
    lines.append(counts)
    return "\n".join(lines) + "\n"


def generate_report(
    members: Sequence[str],
    report_date: ReportDate,
    tasks: Sequence[TaskSnapshot],
    routines: Sequence[RoutineSnapshot],
    generated_at: Optional[datetime] = None,
) -> str:
    """Render the whole team report: date header, member sections, footer.

    The footer carries `generated_at` as HH:MM, or the report date when no
    generation time is given.
    """
    day = _as_date(report_date)
    parts = [f"📊 日報 {day.year}/{day.month}/{day.day}", DIVIDER]
    for index, member in enumerate(members):
        if index:
            parts.append(DIVIDER)
        parts.append(generate_member_section(member, day, tasks, routines).rstrip("\n"))
    stamp = generated_at.strftime("%H:%M") if generated_at else day.isoformat()
    parts.append(DIVIDER)
    parts.append(f"🤖 {BRAND} | {stamp}")
    return "\n".join(parts) + "\n"
