"""Tools for creating and managing heartbeat tasks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apex_claw.ai.tools.base import Tool, ToolArg
from apex_claw.services.scheduler import HeartbeatScheduler

if TYPE_CHECKING:
    from apex_claw.core.context import InvocationContext


class ScheduleTaskTool(Tool):
    """Schedule a prompt to be run later by the agent, with the reply sent to this chat."""

    def __init__(self, scheduler: HeartbeatScheduler):
        self._scheduler = scheduler

    @property
    def name(self) -> str:
        return "schedule_task"

    @property
    def description(self) -> str:
        return (
            "Schedule a proactive task: the bot will run the given prompt at the specified time "
            "and send the response to this chat. Use for reminders, monitoring and periodic summaries."
        )

    @property
    def args(self) -> list[ToolArg]:
        return [
            ToolArg("label", "Short name for this task (e.g. 'morning_briefing'); reusing a label replaces the task"),
            ToolArg("prompt", "Instruction to run at the scheduled time; fetch live data then, don't embed current values"),
            ToolArg("run_at", "First run: ISO-8601 with offset (e.g. '2026-02-25T08:00:00+05:30') or a delay like '15m'"),
            ToolArg(
                "repeat",
                "once (default), minutely, hourly, daily, weekly, every_N_minutes, every_N_hours, "
                "every_N_days, or a 5-field cron expression",
                required=False,
            ),
        ]

    async def execute(self, args: dict[str, str]) -> str:
        return "error: schedule_task needs a conversation context"

    async def execute_with_context(self, ctx: InvocationContext, args: dict[str, str]) -> str:
        try:
            task = self._scheduler.schedule(
                label=args["label"],
                prompt=args["prompt"],
                run_at=args["run_at"],
                ctx=ctx,
                repeat=args.get("repeat", ""),
            )
        except ValueError as e:
            return f"error: {e}"
        return f"Task {task.label!r} scheduled for {task.next_fire.isoformat(timespec='seconds')} (repeat: {task.repeat_label})"


class CancelTaskTool(Tool):
    def __init__(self, scheduler: HeartbeatScheduler):
        self._scheduler = scheduler

    @property
    def name(self) -> str:
        return "cancel_task"

    @property
    def description(self) -> str:
        return "Cancel a scheduled task by its label."

    @property
    def args(self) -> list[ToolArg]:
        return [ToolArg("label", "Label (or id) of the task to cancel")]

    async def execute(self, args: dict[str, str]) -> str:
        label = args["label"]
        if self._scheduler.cancel(label):
            return f"Task {label!r} cancelled."
        return f"No task found with label {label!r}."


class ListTasksTool(Tool):
    def __init__(self, scheduler: HeartbeatScheduler):
        self._scheduler = scheduler

    @property
    def name(self) -> str:
        return "list_tasks"

    @property
    def description(self) -> str:
        return "List all scheduled tasks with their next run time."

    async def execute(self, args: dict[str, str]) -> str:
        return self._scheduler.format_tasks()
