from __future__ import annotations

import logging

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from smsgate.core.config import settings
from smsgate.db.session import SessionLocal
from smsgate.services.dispatch_engine import DispatchEngine, EngineConfig, EngineJob
from smsgate.services.gateway_client import GatewayClient
from smsgate.services.queue_store import QueueStore
from smsgate.tasks.sms_admission import run_sms_admission_job
from smsgate.tasks.sms_dispatch import run_sms_dispatch_job
from smsgate.tasks.sms_reconciliation import run_sms_reconciliation_job

logger = logging.getLogger(__name__)
_scheduler: BackgroundScheduler | None = None
_engine: DispatchEngine | None = None


def get_engine() -> DispatchEngine:
    global _engine
    if _engine is None:
        _engine = DispatchEngine(
            QueueStore(SessionLocal),
            GatewayClient.from_settings(settings),
            EngineConfig.from_settings(settings),
        )
    return _engine


def build_scheduler(engine: DispatchEngine) -> BackgroundScheduler:
    # one worker: ticks never overlap, each runs to completion
    scheduler = BackgroundScheduler(
        timezone="UTC",
        executors={"default": ThreadPoolExecutor(max_workers=1)},
    )
    jobs = (
        (
            EngineJob.ADMISSION,
            run_sms_admission_job,
            CronTrigger(second=settings.sms_admission_cron_seconds),
        ),
        (
            EngineJob.DISPATCH,
            run_sms_dispatch_job,
            IntervalTrigger(seconds=settings.sms_dispatch_interval_seconds),
        ),
        (
            EngineJob.RECONCILIATION,
            run_sms_reconciliation_job,
            CronTrigger(second=settings.sms_reconcile_cron_seconds),
        ),
    )
    for job, func, trigger in jobs:
        options = {}
        if not engine.is_active(job):
            options["next_run_time"] = None
        scheduler.add_job(
            func,
            trigger,
            args=[engine],
            id=job.value,
            max_instances=1,
            replace_existing=True,
            coalesce=True,
            **options,
        )

    def _toggle(job: EngineJob, active: bool) -> None:
        if active:
            scheduler.resume_job(job.value)
        else:
            scheduler.pause_job(job.value)

    engine.on_toggle = _toggle
    return scheduler


def start_scheduler() -> None:
    global _scheduler
    if _scheduler is not None or not settings.sms_scheduler_enabled:
        if not settings.sms_scheduler_enabled:
            logger.info("SMS scheduler disabled (SMS_SCHEDULER_ENABLED=false)")
        return

    _scheduler = build_scheduler(get_engine())
    _scheduler.start()
    logger.info("SMS scheduler started")


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        get_engine().on_toggle = None
        logger.info("SMS scheduler stopped")
        _scheduler = None
