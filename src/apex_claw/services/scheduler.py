"""Heartbeat scheduler that re-enters the agent loop for scheduled tasks."""

from __future__ import annotations

import asyncio
import re
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from apex_claw.config import SchedulerServiceConfig
from apex_claw.log import get_logger
from apex_claw.services.base import Service

if TYPE_CHECKING:
    from apex_claw.core.context import InvocationContext

logger = get_logger(__name__)

NAMED_INTERVALS = {
    "minutely": timedelta(minutes=1),
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
}
_EVERY_PATTERN = re.compile(r"^every_(\d+)_(second|minute|hour|day)s?$")
_DURATION_PATTERN = re.compile(r"^(\d+)\s*(s|m|h|d)$")
_UNIT_SECONDS = {"s": 1, "second": 1, "m": 60, "minute": 60, "h": 3600, "hour": 3600, "d": 86400, "day": 86400}
_ONCE = {"", "once", "none"}


@dataclass
class ScheduledTask:
    id: str
    label: str
    prompt: str
    owner_id: str
    origin_chat_id: str
    next_fire: datetime
    repeat: str = ""  # "" for one-shot, a named/every_N interval, or a 5-field cron expression
    origin_message_id: str = ""
    group_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def repeat_label(self) -> str:
        return self.repeat or "once"


TaskRunner = Callable[[ScheduledTask], Awaitable[None]]


def normalize_repeat(repeat: str | None) -> str:
    """Validate a repeat value; returns "" for one-shot tasks.

    Raises ValueError for anything that is neither an interval nor a cron
    expression.
    """
    value = (repeat or "").strip()
    if value.lower() in _ONCE:
        return ""
    if len(value.split()) == 5:
        CronTrigger.from_crontab(value)
        return value
    value = value.lower()
    if value in NAMED_INTERVALS or _EVERY_PATTERN.match(value):
        if repeat_interval(value) <= timedelta(0):
            raise ValueError(f"repeat interval must be positive: {repeat!r}")
        return value
    raise ValueError(
        f"unsupported repeat {repeat!r}; use once, minutely, hourly, daily, weekly, "
        "every_N_minutes, every_N_hours, every_N_days or a 5-field cron expression"
    )


def repeat_interval(repeat: str) -> timedelta:
    if repeat in NAMED_INTERVALS:
        return NAMED_INTERVALS[repeat]
    match = _EVERY_PATTERN.match(repeat)
    if not match:
        return timedelta(0)
    return timedelta(seconds=int(match.group(1)) * _UNIT_SECONDS[match.group(2)])


def parse_run_at(value: str, now: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Parse an ISO-8601 instant or a duration from *now* (``90s``, ``15m``, ``2h``, ``1d``).

    Naive timestamps are taken to be in *tz*.
    """
    value = value.strip()
    match = _DURATION_PATTERN.match(value)
    if match:
        return now + timedelta(seconds=int(match.group(1)) * _UNIT_SECONDS[match.group(2)])
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(
            f"run_at must be ISO-8601 (e.g. 2026-02-25T08:00:00+05:30) or a duration like 15m. Got: {value!r}"
        ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def next_fire_after(task: ScheduledTask, now: datetime, tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """Next fire time strictly after *now*; missed occurrences collapse into one."""
    if not task.repeat:
        return None
    if len(task.repeat.split()) == 5:
        trigger = CronTrigger.from_crontab(task.repeat, timezone=tz)
        return trigger.get_next_fire_time(None, now + timedelta(seconds=1))
    step = repeat_interval(task.repeat)
    if step <= timedelta(0):
        return None
    nxt = task.next_fire + step
    while nxt <= now:
        nxt += step
    return nxt


class HeartbeatScheduler(Service):
    """In-memory scheduled-task engine.

    An APScheduler interval job calls :meth:`tick` every ``tick_seconds``;
    each tick fires the due tasks in ascending ``next_fire`` order and
    reschedules or drops them.
    """

    def __init__(
        self,
        config: SchedulerServiceConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._config = config
        self._tz = ZoneInfo(config.timezone)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._tasks: dict[str, ScheduledTask] = {}
        self._runner: TaskRunner | None = None
        self._inflight: set[asyncio.Task] = set()
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    @property
    def service_name(self) -> str:
        return "scheduler"

    def set_runner(self, runner: TaskRunner) -> None:
        """Inject the callback that runs a task through the owner's session."""
        self._runner = runner

    async def start(self) -> None:
        self._scheduler.add_job(
            self._heartbeat,
            IntervalTrigger(seconds=self._config.tick_seconds),
            id="heartbeat",
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._config.timezone, tick_seconds=self._config.tick_seconds)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        for task in list(self._inflight):
            task.cancel()
        logger.info("scheduler_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    async def _heartbeat(self) -> None:
        self.tick()

    def schedule(
        self,
        label: str,
        prompt: str,
        run_at: str,
        ctx: InvocationContext,
        repeat: str = "",
    ) -> ScheduledTask:
        """Add a task, replacing any existing task with the same label.

        Raises ValueError for an unparseable or past ``run_at`` or an invalid
        ``repeat``.
        """
        now = self._clock()
        next_fire = parse_run_at(run_at, now, self._tz)
        if next_fire <= now:
            raise ValueError(
                f"run_at {run_at!r} is in the past. Current time is "
                f"{now.astimezone(self._tz).isoformat(timespec='seconds')}. Use a future timestamp."
            )
        task = ScheduledTask(
            id=uuid.uuid4().hex[:12],
            label=label,
            prompt=prompt,
            owner_id=ctx.owner_id,
            origin_chat_id=ctx.chat_id,
            origin_message_id=ctx.message_id,
            group_id=ctx.group_id,
            next_fire=next_fire,
            repeat=normalize_repeat(repeat),
            created_at=now,
        )
        with self._lock:
            replaced = [t.id for t in self._tasks.values() if t.label == label]
            for task_id in replaced:
                del self._tasks[task_id]
            self._tasks[task.id] = task
        logger.info(
            "task_scheduled",
            task_id=task.id,
            label=label,
            next_fire=next_fire.isoformat(),
            repeat=task.repeat_label,
            replaced=bool(replaced),
        )
        return task

    def cancel(self, label_or_id: str) -> bool:
        with self._lock:
            for task in self._tasks.values():
                if task.label == label_or_id or task.id == label_or_id:
                    del self._tasks[task.id]
                    logger.info("task_cancelled", task_id=task.id, label=task.label)
                    return True
        return False

    def list_tasks(self) -> list[ScheduledTask]:
        with self._lock:
            return sorted(self._tasks.values(), key=lambda t: t.next_fire)

    def format_tasks(self) -> str:
        tasks = self.list_tasks()
        if not tasks:
            return "No scheduled tasks."
        lines = []
        for t in tasks:
            next_fire = t.next_fire.astimezone(self._tz).isoformat(timespec="seconds")
            lines.append(f"• {t.label} — {t.prompt}\n  next: {next_fire} | repeat: {t.repeat_label}")
        return "\n".join(lines)

    def tick(self, now: Optional[datetime] = None) -> list[ScheduledTask]:
        """Fire every task that is due at *now*; returns them in firing order."""
        now = now or self._clock()
        with self._lock:
            due = sorted(
                (t for t in self._tasks.values() if now >= t.next_fire),
                key=lambda t: t.next_fire,
            )
            fired = []
            for task in due:
                fired.append(replace(task))
                nxt = next_fire_after(task, now, self._tz)
                if nxt is None:
                    del self._tasks[task.id]
                else:
                    task.next_fire = nxt

        for task in fired:
            logger.info("task_firing", task_id=task.id, label=task.label, chat_id=task.origin_chat_id)
            if self._runner is not None:
                running = asyncio.get_running_loop().create_task(self._fire(task, self._runner))
                self._inflight.add(running)
                running.add_done_callback(self._inflight.discard)
        return fired

    async def wait_idle(self) -> None:
        """Wait for every fire started so far to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _fire(self, task: ScheduledTask, runner: TaskRunner) -> None:
        try:
            async with asyncio.timeout(self._config.task_timeout_seconds):
                await runner(task)
        except TimeoutError:
            logger.warning("task_timeout", task_id=task.id, label=task.label)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("task_error", task_id=task.id, label=task.label, error=str(e))

