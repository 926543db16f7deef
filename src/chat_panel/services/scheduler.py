"""APScheduler-based background job service."""

from __future__ import annotations

import uuid
from typing import Any, Callable, Coroutine, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chat_panel.config import SchedulerConfig
from chat_panel.log import get_logger
from chat_panel.services.base import Service

logger = get_logger(__name__)

JobCallback = Callable[..., Coroutine[Any, Any, Any]]


class SchedulerService(Service):
    """Recurring housekeeping jobs on the application's event loop."""

    def __init__(self, config: SchedulerConfig):
        self._config = config
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    @property
    def service_name(self) -> str:
        return "scheduler"

    async def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._config.timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    def add_interval_job(
        self,
        callback: JobCallback,
        minutes: float,
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Run *callback* every *minutes*. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        trigger = IntervalTrigger(minutes=minutes)
        self._scheduler.add_job(
            callback,
            trigger,
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info("interval_job_added", job_id=job_id, minutes=minutes)
        return job_id

    def list_jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": str(job.next_run_time) if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]
