"""APScheduler wrapper for periodic maintenance jobs.

Runs on the application's event loop (AsyncIOScheduler) with an in-memory
job store; the only registered job today is stuck-job recovery for the
generation queue.

ERROR LOGGING REQUIREMENTS:
- Log job execution errors with full context
- Log missed job executions at WARNING level
- Log scheduler lifecycle events at INFO level
"""

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from apscheduler.events import (
    EVENT_JOB_ADDED,
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    EVENT_SCHEDULER_SHUTDOWN,
    EVENT_SCHEDULER_STARTED,
    JobEvent,
    JobExecutionEvent,
    SchedulerEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from getcare.core.config import get_settings
from getcare.core.logging import get_logger, scheduler_logger

logger = get_logger(__name__)


class SchedulerState(Enum):
    """Scheduler state enumeration."""

    STOPPED = "stopped"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class SchedulerManager:
    """Owns the process-wide AsyncIOScheduler and its event logging."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._state: SchedulerState = SchedulerState.STOPPED

    @property
    def state(self) -> SchedulerState:
        """Get current scheduler state."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._state == SchedulerState.RUNNING

    def _setup_event_listeners(self, scheduler: AsyncIOScheduler) -> None:
        """Set up event listeners for scheduler events."""

        def on_scheduler_event(event: SchedulerEvent) -> None:
            if event.code == EVENT_SCHEDULER_STARTED:
                scheduler_logger.scheduler_start(len(scheduler.get_jobs()))
            elif event.code == EVENT_SCHEDULER_SHUTDOWN:
                scheduler_logger.scheduler_stop(graceful=True)

        def on_job_event(event: JobEvent) -> None:
            job = scheduler.get_job(event.job_id)
            scheduler_logger.job_added(
                job_id=event.job_id,
                job_name=job.name if job else None,
                trigger=str(job.trigger) if job else "unknown",
                next_run=(
                    job.next_run_time.isoformat()
                    if job and getattr(job, "next_run_time", None)
                    else None
                ),
            )

        def on_job_execution_event(event: JobExecutionEvent) -> None:
            job = scheduler.get_job(event.job_id)
            job_name = job.name if job else None

            if event.code == EVENT_JOB_EXECUTED:
                scheduler_logger.job_execution_success(event.job_id, job_name)
            elif event.code == EVENT_JOB_ERROR:
                scheduler_logger.job_execution_error(
                    job_id=event.job_id,
                    job_name=job_name,
                    error=str(event.exception),
                    error_type=type(event.exception).__name__,
                )
            elif event.code == EVENT_JOB_MISSED:
                scheduler_logger.job_missed(
                    job_id=event.job_id,
                    job_name=job_name,
                    scheduled_time=(
                        event.scheduled_run_time.isoformat()
                        if event.scheduled_run_time
                        else "unknown"
                    ),
                )

        scheduler.add_listener(
            on_scheduler_event, EVENT_SCHEDULER_STARTED | EVENT_SCHEDULER_SHUTDOWN
        )
        scheduler.add_listener(on_job_event, EVENT_JOB_ADDED)
        scheduler.add_listener(
            on_job_execution_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )

    def init_scheduler(self) -> bool:
        """Create the scheduler. Returns False when disabled or on error."""
        settings = get_settings()

        if not settings.scheduler_enabled:
            logger.info("Scheduler is disabled via configuration")
            return False

        if self._scheduler is not None:
            return True

        try:
            self._scheduler = AsyncIOScheduler(
                job_defaults={"coalesce": True, "max_instances": 1},
                timezone="UTC",
            )
            self._setup_event_listeners(self._scheduler)
            logger.info("Scheduler initialized successfully")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize scheduler: {e}", exc_info=True)
            self._scheduler = None
            return False

    def start(self) -> bool:
        """Start the scheduler. Must be called from a running event loop."""
        if self._scheduler is None and not self.init_scheduler():
            return False

        if self._state == SchedulerState.RUNNING:
            return True

        try:
            self._scheduler.start()  # type: ignore[union-attr]
            self._state = SchedulerState.RUNNING
            return True
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}", exc_info=True)
            self._state = SchedulerState.STOPPED
            return False

    def stop(self, wait: bool = True) -> None:
        """Stop the scheduler."""
        if self._scheduler is None or self._state != SchedulerState.RUNNING:
            return

        self._state = SchedulerState.SHUTTING_DOWN
        try:
            self._scheduler.shutdown(wait=wait)
        except Exception as e:
            logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)
        finally:
            self._state = SchedulerState.STOPPED
            self._scheduler = None

    def add_interval_job(
        self,
        func: Callable[[], Awaitable[Any]],
        job_id: str,
        name: str | None = None,
        minutes: float = 10,
    ) -> str | None:
        """Register a coroutine function to run every `minutes`."""
        if self._scheduler is None:
            scheduler_logger.scheduler_not_available(
                operation="add_interval_job",
                reason="Scheduler is not initialized",
            )
            return None

        job = self._scheduler.add_job(
            func,
            trigger=IntervalTrigger(minutes=minutes),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )
        return str(job.id)

    def check_health(self) -> dict[str, Any]:
        """Check scheduler health."""
        if self._scheduler is None:
            return {
                "status": "not_initialized",
                "running": False,
                "state": self._state.value,
                "job_count": 0,
            }

        return {
            "status": "ok" if self.is_running else "degraded",
            "running": self.is_running,
            "state": self._state.value,
            "job_count": len(self._scheduler.get_jobs()),
        }


# Global scheduler manager instance
scheduler_manager = SchedulerManager()
