from __future__ import annotations

import asyncio
from datetime import timedelta

from watchtagger import scheduler as scheduler_module
from watchtagger.config import Config, SchedulerConfig, set_config


class TestScheduler:
    def teardown_method(self) -> None:
        set_config(None)

    def test_disabled_scheduler_adds_no_job(self) -> None:
        set_config(Config(scheduler=SchedulerConfig(enabled=False)))

        scheduler_module.start_scheduler()

        assert scheduler_module.scheduler is None

    def test_interval_job_is_registered(self) -> None:
        set_config(Config(scheduler=SchedulerConfig(interval_hours=6, timezone="UTC")))

        async def start_and_inspect():
            scheduler_module.start_scheduler()
            try:
                job = scheduler_module.scheduler.get_job("reconciliation")
                return job.trigger.interval, job.max_instances, job.coalesce
            finally:
                scheduler_module.stop_scheduler()

        interval, max_instances, coalesce = asyncio.run(start_and_inspect())

        assert interval == timedelta(hours=6)
        assert max_instances == 1
        assert coalesce is True
        assert scheduler_module.scheduler is None
