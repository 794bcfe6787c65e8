"""Background scheduler for the ingestion, prediction, and update jobs.

Each registered job fires on its own interval. A trigger runs the job
body on a fresh thread, so a slow run never delays other jobs and a new
trigger may overlap a run of the same job that is still going. Any
exception from a job body is logged as a JobError and swallowed so that
neither the failing job's timer nor any other job's timer is affected.

Manual triggers (``trigger``) run inline and propagate errors to the
caller.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import schedule

from rallywatch import config
from rallywatch.errors import JobError

logger = logging.getLogger(__name__)


@dataclass
class JobState:
    """Bookkeeping for one registered job.

    Attributes:
        name: Job name.
        func: Job body.
        interval_s: Seconds between triggers.
        running: Number of runs currently executing.
        runs: Completed runs, successful or not.
        failures: Runs that raised.
        last_run: When the last run finished.
        last_error: Message of the last failure, if any.
        job: The underlying ``schedule`` job.
    """

    name: str
    func: Callable[[], Any]
    interval_s: int
    running: int = 0
    runs: int = 0
    failures: int = 0
    last_run: datetime | None = None
    last_error: str | None = None
    job: schedule.Job | None = None

    @property
    def state(self) -> str:
        """``running`` while at least one run is in progress, else ``idle``."""
        return "running" if self.running else "idle"


class JobScheduler:
    """Runs named jobs on independent intervals with per-job isolation.

    Args:
        threaded: Dispatch each trigger on its own thread. When False,
            triggers run inline (useful for tests).
    """

    def __init__(self, threaded: bool = True) -> None:
        self.threaded = threaded
        self._scheduler = schedule.Scheduler()
        self._jobs: dict[str, JobState] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def job_names(self) -> list[str]:
        """Names of all registered jobs, in registration order."""
        return list(self._jobs)

    def register(self, name: str, func: Callable[[], Any], interval_s: int) -> None:
        """Register *func* to run every *interval_s* seconds.

        Raises:
            ValueError: If *name* is already registered or the interval
                is not positive.
        """
        if name in self._jobs:
            raise ValueError(f"Job {name!r} is already registered")
        if interval_s <= 0:
            raise ValueError(f"Job {name!r} needs a positive interval")
        job_state = JobState(name=name, func=func, interval_s=interval_s)
        job_state.job = self._scheduler.every(interval_s).seconds.do(self._dispatch, name)
        self._jobs[name] = job_state
        logger.info("Scheduled job %s every %d seconds.", name, interval_s)

    def _dispatch(self, name: str) -> None:
        if self.threaded:
            threading.Thread(
                target=self._execute,
                args=(name,),
                name=f"job-{name}",
                daemon=True,
            ).start()
        else:
            self._execute(name)

    def _run(self, job_state: JobState) -> Any:
        """Run one job body with bookkeeping, re-raising any failure."""
        with self._lock:
            job_state.running += 1
        try:
            return job_state.func()
        except Exception as exc:
            with self._lock:
                job_state.failures += 1
                job_state.last_error = str(exc)
            raise
        finally:
            with self._lock:
                job_state.running -= 1
                job_state.runs += 1
                job_state.last_run = datetime.now()

    def _execute(self, name: str) -> bool:
        """Run one job body, containing any failure.

        Returns:
            True if the body completed without raising.
        """
        logger.info("Running job %s...", name)
        try:
            self._run(self._jobs[name])
        except Exception as exc:
            logger.error("%s", JobError(name, exc), exc_info=exc)
            return False
        logger.info("Job %s finished.", name)
        return True

    def trigger(self, name: str) -> Any:
        """Run job *name* now, inline, propagating any error.

        The run is counted in ``status()`` like a scheduled one.

        Raises:
            KeyError: If *name* is not registered.
        """
        job_state = self._jobs[name]
        logger.info("Manually triggering job %s.", name)
        return self._run(job_state)

    def run_pending(self) -> None:
        """Dispatch every job whose interval has elapsed."""
        self._scheduler.run_pending()

    def run_all(self) -> None:
        """Dispatch every job immediately, regardless of schedule."""
        self._scheduler.run_all()

    def _loop(self, poll_s: float) -> None:
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(poll_s)

    def start(self, poll_s: float = 1.0, run_immediately: bool = False) -> None:
        """Start polling on a daemon thread.

        Args:
            poll_s: Seconds between schedule checks.
            run_immediately: Dispatch every job once before polling.
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduler already running.")
            return
        self._stop.clear()
        if run_immediately:
            self.run_all()
        self._thread = threading.Thread(
            target=self._loop, args=(poll_s,), name="scheduler", daemon=True
        )
        self._thread.start()
        logger.info("Scheduler is active with %d job(s).", len(self._jobs))

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling. Runs already in progress are not interrupted."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped.")

    def status(self) -> dict[str, dict[str, Any]]:
        """Return a snapshot of every job's state and counters."""
        with self._lock:
            return {
                name: {
                    "state": js.state,
                    "interval_s": js.interval_s,
                    "runs": js.runs,
                    "failures": js.failures,
                    "last_run": js.last_run.isoformat() if js.last_run else None,
                    "last_error": js.last_error,
                    "next_run": (
                        js.job.next_run.isoformat()
                        if js.job is not None and js.job.next_run
                        else None
                    ),
                }
                for name, js in self._jobs.items()
            }


def build_scheduler(
    db_path: str = config.DB_PATH,
    threaded: bool = True,
) -> JobScheduler:
    """Create a scheduler with the default ingest, predict, and updates jobs.

    Args:
        db_path: Path to the SQLite database file; each run opens its own
            connection.
        threaded: Passed through to JobScheduler.

    Returns:
        A scheduler that has not been started yet.
    """
    from rallywatch.pipeline import run_ingestion, run_predictions, run_update_check

    scheduler = JobScheduler(threaded=threaded)
    scheduler.register(
        "ingest", lambda: run_ingestion(db_path=db_path), config.INGEST_INTERVAL_S
    )
    scheduler.register(
        "predict", lambda: run_predictions(db_path=db_path), config.PREDICT_INTERVAL_S
    )
    scheduler.register("updates", run_update_check, config.UPDATES_INTERVAL_S)
    return scheduler
