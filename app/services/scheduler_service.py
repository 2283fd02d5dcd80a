"""
ProcessFlow
Scheduler Service.

Lightweight background job scheduler.

Architecture:
    - Job functions register themselves with @register_job(name)
    - Each job has a ScheduledJob row holding config and run history
    - Jobs run on demand through the admin API (POST /api/v1/jobs/<name>/run)
    - With SCHEDULER_ENABLED, a daemon thread runs enabled interval jobs
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Callable

from flask import Flask, current_app, has_app_context

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.base import as_utc
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("overdue_scanner")
        def scan_overdue_orders(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return dict(_job_registry)


class SchedulerService:
    """
    Manages job registration, persistence, and execution.
    Jobs are executed within the Flask app context.
    """

    _app: Flask | None = None
    _stop: threading.Event | None = None
    _thread: threading.Thread | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        # Importing registers the concrete jobs
        from app.services import scheduled_jobs  # noqa: F401

        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs", len(_job_registry))

    @classmethod
    def _context(cls):
        if has_app_context() and current_app._get_current_object() is cls._app:
            return nullcontext()
        return cls._app.app_context()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one."""
        if not cls._app:
            return []

        created = []
        with cls._context():
            for name, fn in _job_registry.items():
                if ScheduledJob.query.filter_by(job_name=name).first() is None:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type="interval",
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

        Raises:
            NotFoundError for unknown job names.
        """
        fn = _job_registry.get(job_name)
        if fn is None:
            raise NotFoundError(resource="Job", resource_id=job_name)
        if not cls._app:
            raise RuntimeError("Scheduler not initialized")

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._context():
            try:
                result = fn(cls._app)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc)

            duration_ms = int((time.monotonic() - start) * 1000)
            cls.ensure_jobs_registered()
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            job_record.record_run(
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
    def toggle_job(cls, job_name: str, enabled: bool) -> dict:
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record is None:
            raise NotFoundError(resource="Job", resource_id=job_name)
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()

    # ── Background loop ──────────────────────────────────────────────────

    @classmethod
    def due_jobs(cls, now: datetime | None = None) -> list[str]:
        """Names of enabled jobs whose interval has elapsed since their last run."""
        now = now or datetime.now(timezone.utc)
        due = []
        for job in ScheduledJob.query.filter_by(is_enabled=True).all():
            if job.job_name not in _job_registry:
                continue
            seconds = (job.schedule_config or {}).get("seconds", 86400)
            last = as_utc(job.last_run_at)
            if last is None or (now - last).total_seconds() >= seconds:
                due.append(job.job_name)
        return due

    @classmethod
    def start(cls, tick_seconds: int = 5) -> None:
        if cls._thread is not None and cls._thread.is_alive():
            return
        cls.ensure_jobs_registered()
        cls._stop = threading.Event()

        def _loop():
            while not cls._stop.wait(tick_seconds):
                with cls._app.app_context():
                    for name in cls.due_jobs():
                        cls.run_job(name)

        cls._thread = threading.Thread(target=_loop, name="processflow-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler loop started (tick=%ss)", tick_seconds)

    @classmethod
    def stop(cls) -> None:
        if cls._stop is not None:
            cls._stop.set()
        cls._thread = None


def _get_default_schedule(job_name: str) -> dict:
    defaults = {
        "overdue_scanner": {"seconds": 86400, "description": "Daily"},
        "stalled_order_scanner": {"seconds": 21600, "description": "Every 6 hours"},
        "demo_auto_mover": {"seconds": 30, "description": "Every 30 seconds (demo only)"},
    }
    return defaults.get(job_name, {"seconds": 86400, "description": "Daily"})
