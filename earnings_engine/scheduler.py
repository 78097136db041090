# earnings_engine/scheduler.py
"""
Scheduler for the periodic earnings jobs.

Uses APScheduler's asyncio scheduler to run:
- Monthly tier recalculation (1st of the month, 00:00 UTC)
- Daily batch payout (02:00 UTC)
- Weekly reconciliation (Monday, 03:00 UTC)
- Failover queue drain (every 5 minutes)

Every run, scheduled or manual, goes through ``execute_task`` which holds a
database lease for the task name so a job never overlaps itself, even
across processes.
"""

import logging
import os
import socket
import uuid
from typing import Awaitable, Callable, Dict

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from earnings_engine import crud
from earnings_engine.background_tasks.earnings_tasks import (
    daily_batch_payout,
    monthly_tier_recalculation,
    process_failover_queue,
    weekly_reconciliation,
)
from earnings_engine.core.config import settings
from earnings_engine.db.session import SessionLocal

logger = logging.getLogger(__name__)

TASKS: Dict[str, Callable[[], Awaitable[str]]] = {
    "monthly_tier_recalculation": monthly_tier_recalculation,
    "daily_batch_payout": daily_batch_payout,
    "weekly_reconciliation": weekly_reconciliation,
    "process_failover_queue": process_failover_queue,
}

# Global scheduler instance
scheduler = None


def _lease_holder() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


async def execute_task(name: str) -> Dict[str, object]:
    """
    Run one named task now.

    Returns:
        ``{"success": bool, "message": str}``. Task failures are logged and
        reported here; they never propagate to the caller.
    """
    task = TASKS.get(name)
    if task is None:
        return {"success": False, "message": f"Unknown task: {name}"}

    holder = _lease_holder()
    db = SessionLocal()
    try:
        if not crud.task_lease.acquire(
            db, task_name=name, holder=holder, ttl_seconds=settings.TASK_LEASE_SECONDS
        ):
            logger.warning(f"Task {name} skipped: lease held by another run")
            return {"success": False, "message": f"Task {name} is already running"}

        try:
            logger.info(f"Running task {name}")
            message = await task()
            logger.info(f"Task {name} finished: {message}")
            return {"success": True, "message": message}
        except Exception as e:
            logger.error(f"Task {name} failed: {e}", exc_info=True)
            return {"success": False, "message": f"Task {name} failed: {e}"}
        finally:
            crud.task_lease.release(db, task_name=name, holder=holder)
    finally:
        db.close()


def _on_job_error(event):
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


def _on_job_missed(event):
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler():
    """
    Create and start the scheduler. Must be called from a running event loop
    (the application lifespan).
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 60
        }
    )

    scheduler.add_job(
        func=execute_task,
        args=["monthly_tier_recalculation"],
        trigger=CronTrigger(day=1, hour=0, minute=0),
        id='monthly_tier_recalculation',
        name='Monthly Fee Tier Recalculation',
        replace_existing=True
    )
    logger.info("Scheduled job: monthly_tier_recalculation (1st of month at 00:00 UTC)")

    scheduler.add_job(
        func=execute_task,
        args=["daily_batch_payout"],
        trigger=CronTrigger(hour=2, minute=0),
        id='daily_batch_payout',
        name='Daily Creator Batch Payout',
        replace_existing=True
    )
    logger.info("Scheduled job: daily_batch_payout (daily at 2 AM UTC)")

    scheduler.add_job(
        func=execute_task,
        args=["weekly_reconciliation"],
        trigger=CronTrigger(day_of_week='mon', hour=3, minute=0),
        id='weekly_reconciliation',
        name='Weekly Ledger Reconciliation',
        replace_existing=True
    )
    logger.info("Scheduled job: weekly_reconciliation (Mondays at 3 AM UTC)")

    scheduler.add_job(
        func=execute_task,
        args=["process_failover_queue"],
        trigger=IntervalTrigger(minutes=5),
        id='process_failover_queue',
        name='Drain Failover Queue',
        replace_existing=True
    )
    logger.info("Scheduled job: process_failover_queue (every 5 minutes)")

    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    scheduler.start()
    logger.info("Earnings scheduler started successfully")

    return scheduler


def shutdown_scheduler():
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Earnings scheduler shutdown complete")
        scheduler = None


def get_scheduler_status():
    """
    Get the current status of all scheduled jobs.

    Returns:
        Dict with the scheduler state and each job's next run time
    """
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs
    }
