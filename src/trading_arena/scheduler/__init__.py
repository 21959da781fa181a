"""Cron-driven jobs: premarket analysis, postmarket reflection and the daily report."""

import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from rich.console import Console

from trading_arena.config import ScheduleConfig
from trading_arena.data import DataStore
from trading_arena.events import Event, EventType, NullNotifier, Notifier, notify

console = Console()

PREMARKET = "premarket_analysis"
POSTMARKET = "postmarket_reflection"
DAILY_REPORT = "daily_report"

JobFn = Callable[[], Awaitable[object]]


class TradingScheduler:
    """Runs each job on its cron schedule.

    Every job has its own in-progress flag: a trigger that fires while the
    previous run of the same job is still going is skipped, not queued.
    """

    def __init__(
        self,
        store: DataStore,
        config: ScheduleConfig,
        premarket: JobFn,
        postmarket: JobFn,
        report: JobFn,
        notifier: Notifier | None = None,
    ):
        self.store = store
        self.config = config
        self.notifier = notifier or NullNotifier()
        self.jobs: dict[str, tuple[str, JobFn]] = {
            PREMARKET: (config.premarket_cron, premarket),
            POSTMARKET: (config.postmarket_cron, postmarket),
            DAILY_REPORT: (config.report_cron, report),
        }
        self.running: dict[str, bool] = {name: False for name in self.jobs}
        self.scheduler: AsyncIOScheduler | None = None

    async def run_job(self, name: str) -> bool:
        """Run one job now unless it is already running. Returns True if it ran."""
        if self.running[name]:
            console.print(f"[yellow]{name} is already running, skipping this trigger[/yellow]")
            return False

        _, fn = self.jobs[name]
        self.running[name] = True
        started = time.monotonic()
        console.print(f"[bold]▶ {name}[/bold] started at {datetime.now():%Y-%m-%d %H:%M:%S}")
        try:
            await fn()
        except Exception as e:
            console.print(
                f"[red]✗ {name} failed after {time.monotonic() - started:.1f}s: {e}[/red]"
            )
            await notify(
                self.notifier, Event(type=EventType.ERROR, payload=f"{name} failed: {e}")
            )
        else:
            console.print(
                f"[green]✓ {name} completed in {time.monotonic() - started:.1f}s[/green]"
            )
            self.store.set_state(f"last_{name}_at", datetime.now().isoformat())
        finally:
            self.running[name] = False
        return True

    def start(self) -> AsyncIOScheduler:
        """Register all jobs and start the scheduler on the running event loop."""
        self.scheduler = AsyncIOScheduler(timezone=self.config.timezone)
        for name, (cron, _) in self.jobs.items():
            self.scheduler.add_job(
                self.run_job,
                CronTrigger.from_crontab(cron, timezone=self.config.timezone),
                args=[name],
                id=name,
                name=name,
                max_instances=1,
                coalesce=True,
            )
            console.print(f"  [dim]{name}: {cron} ({self.config.timezone})[/dim]")
            last = self.store.get_state(f"last_{name}_at")
            if last:
                console.print(f"  [dim]  last run {last}[/dim]")

        if self.config.run_on_start:
            self.scheduler.add_job(self.run_job, args=[PREMARKET], id="initial_analysis")

        self.scheduler.start()
        console.print("[bold green]Scheduler active[/bold green]")
        return self.scheduler

    def shutdown(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            console.print("[bold]Scheduler stopped.[/bold]")
