"""Background jobs: mindshare collection, metric refresh, loyalty expiry and cache cleanup."""

from __future__ import annotations

from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from giverep.core.logging import get_logger
from giverep.database import SessionLocal
from giverep.services import loyalty as loyalty_service
from giverep.services import mindshare as mindshare_service
from giverep.services import twitter_user_info as user_info_service

logger = get_logger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


def run_job(name: str, job: Callable[[Session], object]) -> None:
    """Run ``job`` with its own session; failures are logged, never raised into the scheduler."""
    db = SessionLocal()
    logger.info("scheduler_job_start", extra={"job": name})
    try:
        result = job(db)
        logger.info("scheduler_job_end", extra={"job": name, "result": result})
    except Exception:
        db.rollback()
        logger.exception("scheduler_job_error", extra={"job": name})
    finally:
        db.close()


def collect_mindshare_tweets() -> None:
    run_job("collect_mindshare_tweets", mindshare_service.collect_all_project_tweets)


def refresh_recent_metrics() -> None:
    run_job("refresh_recent_metrics", mindshare_service.update_recent_tweet_metrics)


def calculate_mindshare_metrics() -> None:
    run_job("calculate_mindshare_metrics", lambda db: len(mindshare_service.calculate_mindshare_metrics(db)))


def deactivate_expired_projects() -> None:
    run_job("deactivate_expired_projects", loyalty_service.deactivate_expired_projects)


def cleanup_user_info() -> None:
    run_job("cleanup_user_info", user_info_service.cleanup_old)


def start_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(collect_mindshare_tweets, "interval", hours=6, id="collect_mindshare_tweets")
    scheduler.add_job(refresh_recent_metrics, "interval", hours=1, id="refresh_recent_metrics")
    scheduler.add_job(calculate_mindshare_metrics, "cron", hour=0, minute=30, id="calculate_mindshare_metrics")
    scheduler.add_job(deactivate_expired_projects, "interval", minutes=15, id="deactivate_expired_projects")
    scheduler.add_job(cleanup_user_info, "cron", hour=3, minute=0, id="cleanup_user_info")
    scheduler.start()

    _scheduler = scheduler
    logger.info("scheduler_started", extra={"jobs": [job.id for job in scheduler.get_jobs()]})
    return scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
    _scheduler = None
