"""Background training jobs.

Training is compute-heavy, so it runs on a worker pool instead of the
request path. A job can be cancelled at any time; the registry refuses to
publish a cancelled run, so predictors only ever see complete snapshots.
"""

import logging
import threading
import uuid
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional

from src.config import DEFAULT_MAX_RETAINED_JOBS, DEFAULT_TRAINING_WORKERS
from src.engine.deadline import Deadline
from src.engine.registry import ModelSnapshot
from src.exceptions import EngineTimeoutError

# Configure module logger
logger = logging.getLogger(__name__)

TrainFn = Callable[[Deadline], ModelSnapshot]


class TrainingJob:
    """Handle for one submitted training run."""

    def __init__(self, model_name: str, future: Future, cancel_event: threading.Event):
        self.job_id = uuid.uuid4().hex
        self.model_name = model_name
        self._future = future
        self._cancel_event = cancel_event

    @property
    def status(self) -> str:
        if not self._future.done():
            if self._cancel_event.is_set():
                return "cancelling"
            return "running" if self._future.running() else "pending"
        if self._future.cancelled():
            return "cancelled"
        error = self._future.exception()
        if isinstance(error, CancelledError):
            return "cancelled"
        return "failed" if error is not None else "completed"

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the job already finished."""
        if self._future.done():
            return False
        self._cancel_event.set()
        self._future.cancel()
        logger.info(f"Cancellation requested for training job {self.job_id}")
        return True

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> ModelSnapshot:
        """Wait for the published snapshot.

        Raises:
            EngineTimeoutError: If the job does not finish within ``timeout``.
            CancelledError: If the job was cancelled.
        """
        try:
            return self._future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise EngineTimeoutError(f"train:{self.model_name}", timeout) from e

    def describe(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "job_id": self.job_id,
            "model_name": self.model_name,
            "status": self.status,
        }
        if self.status == "completed":
            info["snapshot"] = self._future.result().describe()
        elif self.status == "failed":
            info["error"] = str(self._future.exception())
        return info


class TrainingScheduler:
    """Runs training functions on a thread pool and tracks their jobs.

    Unfinished jobs are always tracked. Of the finished ones only the newest
    ``max_retained_jobs`` are kept; older ones are forgotten on the next submit.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_TRAINING_WORKERS,
        max_retained_jobs: int = DEFAULT_MAX_RETAINED_JOBS,
    ):
        self.max_retained_jobs = max_retained_jobs
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="shopsense-train"
        )
        self._jobs: Dict[str, TrainingJob] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        model_name: str,
        train_fn: TrainFn,
        timeout: Optional[float] = None,
    ) -> TrainingJob:
        """Schedule ``train_fn`` in the background.

        Args:
            model_name: Name of the model being trained (for status only).
            train_fn: Called with a ``Deadline`` carrying the cancel event;
                must publish through the registry with that deadline.
            timeout: Optional budget for the whole run.
        """
        cancel_event = threading.Event()

        def run() -> ModelSnapshot:
            # The deadline starts when the worker picks the job up.
            deadline = Deadline(timeout=timeout, cancel_event=cancel_event)
            deadline.check(f"train:{model_name}")
            try:
                return train_fn(deadline)
            except CancelledError:
                logger.info(f"Training of '{model_name}' cancelled")
                raise
            except Exception as e:
                logger.error(f"Training of '{model_name}' failed: {e}", exc_info=True)
                raise

        future = self._executor.submit(run)
        job = TrainingJob(model_name, future, cancel_event)
        with self._lock:
            self._evict_finished()
            self._jobs[job.job_id] = job

        logger.info(
            "Training job submitted",
            extra={"job_id": job.job_id, "model_name": model_name},
        )
        return job

    def _evict_finished(self) -> None:
        # Dicts keep submission order, so the first finished jobs are the oldest.
        finished = [job_id for job_id, job in self._jobs.items() if job.done()]
        for job_id in finished[: max(0, len(finished) - self.max_retained_jobs)]:
            del self._jobs[job_id]
            logger.debug(f"Forgot finished training job {job_id}")

    def get(self, job_id: str) -> Optional[TrainingJob]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[TrainingJob]:
        with self._lock:
            return list(self._jobs.values())

    def shutdown(self, wait: bool = True) -> None:
        for job in self.jobs():
            job.cancel()
        self._executor.shutdown(wait=wait)
