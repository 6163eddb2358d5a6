"""Best-effort bookkeeping jobs with exponential backoff retry"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from payment_orchestrator.config import settings
from payment_orchestrator.infrastructure.database.models import BookkeepingJob
from payment_orchestrator.infrastructure.database.repositories import BookkeepingJobRepository
from payment_orchestrator.infrastructure.database.session import SessionFactory
from payment_orchestrator.infrastructure.observability.metrics import (
    bookkeeping_job_counter,
    bookkeeping_latency_histogram,
    collaborator_failures_counter,
)
from payment_orchestrator.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

JobCall = Callable[..., Awaitable[Any]]


class BookkeepingRunner:
    """
    Runs ledger, loyalty accrual, QR and notification calls as independent jobs.

    Retry strategy:
    - Exponential backoff: base, 2*base, 4*base, ... (base * 2^(attempt-1))
    - Any exception counts as a failed attempt
    - Every job is tracked in the bookkeeping_job table (attempts, last error, final status)

    A job never raises and never touches payment status.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.bookkeeping_max_attempts
        self.backoff_base = settings.bookkeeping_backoff_base if backoff_base is None else backoff_base

    async def run(self, job_type: str, payment_id: Optional[str], call: JobCall, payload: Dict[str, Any]) -> bool:
        """
        Deliver one bookkeeping call; ``call`` is awaited with ``payload`` as keyword arguments.

        Returns:
            True once delivered, False after exhausting every attempt
        """
        job_id = self._open_job(job_type, payment_id, payload)

        attempt = 0
        last_error = None
        while attempt < self.max_attempts:
            attempt += 1
            try:
                with bookkeeping_latency_histogram.time():
                    await call(**payload)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                collaborator_failures_counter.labels(collaborator=job_type).inc()
                logger.warning(
                    f"Bookkeeping job {job_type} attempt {attempt} failed",
                    extra={"payment_id": payment_id, "job_type": job_type, "error": last_error},
                )
                self._record_attempt(job_id, attempt, "retrying", last_error)

                if attempt >= self.max_attempts:
                    break

                # Exponential backoff: 1s, 2s, 4s, 8s with the default base
                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))
                continue

            self._record_attempt(job_id, attempt, "delivered", None)
            bookkeeping_job_counter.labels(job_type=job_type, outcome="delivered").inc()
            return True

        self._record_attempt(job_id, attempt, "failed", last_error)
        bookkeeping_job_counter.labels(job_type=job_type, outcome="failed").inc()
        logger.error(
            f"Bookkeeping job {job_type} gave up after {attempt} attempts",
            extra={"payment_id": payment_id, "job_type": job_type, "error": last_error},
        )
        return False

    def _open_job(self, job_type: str, payment_id: Optional[str], payload: Dict[str, Any]) -> Optional[str]:
        db = self.session_factory()
        try:
            job = BookkeepingJobRepository(db).create_job(payment_id, job_type, payload)
            db.commit()
            return job.id
        except Exception:
            # Tracking is auxiliary; the call itself still goes out
            db.rollback()
            logger.exception(f"Could not record bookkeeping job {job_type}")
            return None
        finally:
            db.close()

    def _record_attempt(self, job_id, attempts: int, status: str, error: Optional[str]) -> None:
        if job_id is None:
            return
        db = self.session_factory()
        try:
            job: Optional[BookkeepingJob] = BookkeepingJobRepository(db).get_job(job_id)
            if job is not None:
                job.attempts = attempts
                job.status = status
                job.last_error = error
                job.last_attempt_at = utcnow()
                db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Could not update bookkeeping job {job_id}")
        finally:
            db.close()
