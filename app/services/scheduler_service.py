"""
Employee Journey Engine
Scheduler Service.

Lightweight job registry. The trigger (cron, k8s CronJob, ``flask run-job``)
lives outside the app; this module only knows how to run a registered job
inside an app context and record the run.

Architecture:
    - SchedulerService: Manages job registration and execution
    - Jobs are stored in ScheduledJob model for persistence
    - Pluggable job functions registered via decorator
"""

from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from typing import Callable

from flask import Flask, has_app_context

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("journey_overdue_reminder")
        def remind_overdue_phases(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Lightweight scheduler service.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        # Importing the module registers its jobs.
        from app.services import scheduled_jobs  # noqa: F401

        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def _context(cls):
        # Reuse the caller's context so jobs share its session.
        if has_app_context():
            return nullcontext()
        return cls._app.app_context()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        if not cls._app:
            return []

        created = []
        with cls._context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                        schedule_type="cron",
                        schedule_config=_get_default_schedule(name),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        cls.ensure_jobs_registered()

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._context():
            record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if record is not None and not record.is_enabled:
                logger.info("Job %s is disabled; skipped", job_name)
                record.record_run(status="skipped")
                db.session.commit()
                return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                        "result": None, "error": None}

            try:
                result = fn(cls._app)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc)

            duration_ms = int((time.monotonic() - start) * 1000)

            record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if record:
                record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()


def _get_default_schedule(job_name: str) -> dict:
    """Return default schedule config for known job types."""
    defaults = {
        "journey_overdue_reminder": {"hour": "8", "minute": "0", "description": "Daily at 08:00"},
        "stale_notification_cleanup": {"hour": "2", "minute": "0",
                                       "description": "Daily at 02:00"},
    }
    return defaults.get(job_name, {"hour": "0", "minute": "0",
                                    "description": "Daily at midnight"})
