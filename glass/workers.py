"""
Bounded worker pool.

A fixed number of threads drain a shared FIFO queue whose capacity equals
the number of workers, so producers block while every worker is busy and
the queue is full.
"""

import queue
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .logger import BoundLogger, StructuredLogger, get_logger

# Tells a worker that no more jobs will come
_STOP = object()


@dataclass(frozen=True)
class Job:
    """Request for indexing one entity."""

    entity_type: str
    entity_id: str


Handler = Callable[[BoundLogger, Job], None]


class WorkerPool:
    """
    Run ``handler(ctx, job)`` for each submitted job on ``workers`` threads.

    Usage:
        with WorkerPool(4, handler) as pool:
            for job in jobs:
                pool.submit(job)
        # every submitted job has been handled here

    A job whose handler raises is logged and counted as failed; the worker
    moves on to the next job.
    """

    def __init__(
        self,
        workers: int,
        handler: Handler,
        logger: Optional[StructuredLogger] = None,
        ctx: Optional[BoundLogger] = None,
    ):
        if workers <= 0:
            raise ValueError(f"workers must be positive, got {workers}")
        self.workers = workers
        self.handler = handler
        self.logger = logger or get_logger()
        self.ctx = ctx or self.logger.bind()

        self._queue: "queue.Queue" = queue.Queue(maxsize=workers)
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._started = False
        self._closed = False
        self.submitted = 0
        self.processed = 0
        self.failed = 0

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        self.join()

    def start(self) -> None:
        if self._started:
            raise RuntimeError("Worker pool already started")
        self._started = True
        self.ctx.debug(f"Starting {self.workers} workers")
        for worker_id in range(self.workers):
            thread = threading.Thread(
                target=self._run_worker,
                args=(worker_id,),
                name=f"glass-worker-{worker_id}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def submit(self, job: Job) -> None:
        """Queue a job, blocking while the queue is full."""
        if not self._started or self._closed:
            raise RuntimeError("Worker pool is not accepting jobs")
        self._queue.put(job)
        with self._lock:
            self.submitted += 1

    def close(self) -> None:
        """Stop accepting jobs; workers exit once the queue is drained."""
        if self._closed:
            return
        self._closed = True
        for _ in self._threads:
            self._queue.put(_STOP)

    def join(self) -> None:
        """Block until every worker has exited."""
        for thread in self._threads:
            thread.join()

    def _run_worker(self, worker_id: int) -> None:
        ctx = self.ctx.bind(wk=worker_id)
        while True:
            job = self._queue.get()
            if job is _STOP:
                return
            try:
                self.handler(ctx, job)
            except Exception as e:
                ctx.error(
                    "Job failed",
                    entity_type=job.entity_type,
                    id=job.entity_id,
                    error=f"{type(e).__name__}: {e}",
                )
                with self._lock:
                    self.failed += 1
            finally:
                with self._lock:
                    self.processed += 1
