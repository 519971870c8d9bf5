"""
Indexing orchestrator.

Each epoch replays the whole content server history through a worker pool,
waits for the pool to drain, then reprojects the tile grid. Epochs repeat
every ``index_interval`` seconds until the stop event is set.
"""

import threading
import time
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from .api.client import CatalystClient
from .api.history import HistoryCursor
from .indexes.base import ALREADY_INDEXED, SKIPPED, Index
from .logger import BoundLogger, StructuredLogger, get_logger
from .tiles import index_tiles
from .workers import Job, WorkerPool


INDEX_ERROR = "error"


class EpochInterrupted(Exception):
    """Raised when the stop event is set while the history is being replayed."""
    pass


class JobFailed(Exception):
    """Raised by a worker job when at least one index failed for its entity."""
    pass


class ContentIndexer:
    """
    Manager of the indexing process.

    States:
    - IDLE: waiting for the next epoch
    - FETCHING_HISTORY: requesting a history page
    - DISPATCHING: queueing the page's entries as jobs
    - DRAINING: queue closed, waiting for the workers
    - PROJECTING: updating tiles
    - CANCELLED: stop event seen, no further epochs
    """

    IDLE = "idle"
    FETCHING_HISTORY = "fetching_history"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    PROJECTING = "projecting"
    CANCELLED = "cancelled"

    def __init__(
        self,
        client: CatalystClient,
        session_factory: sessionmaker,
        indexes: Sequence[Index],
        index_workers: int,
        index_interval: int,
        history_page_size: Optional[int] = None,
        server_name: Optional[str] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        if index_workers <= 0:
            raise ValueError(f"index_workers must be positive, got {index_workers}")
        if index_interval <= 0:
            raise ValueError(f"index_interval must be positive, got {index_interval}")
        self.client = client
        self.session_factory = session_factory
        self.indexes: List[Index] = list(indexes)
        self.index_workers = index_workers
        self.index_interval = index_interval
        self.history_page_size = history_page_size
        self.server_name = server_name
        self.logger = logger or get_logger()

        self.state = self.IDLE
        self.epoch = 0

    def index_entity(self, ctx: BoundLogger, job: Job) -> Dict[str, str]:
        """
        Run every registered index against one entity.

        A failing index is logged and does not prevent the others from
        running.

        Returns:
            Mapping of index name to outcome (INDEX_ERROR for failures)
        """
        outcomes = {}
        for index in self.indexes:
            index_ctx = ctx.bind(index=index.name, id=job.entity_id)
            self.logger.record_index_attempt(index.name)
            try:
                outcome = index.run(index_ctx, self, job.entity_type, job.entity_id)
            except Exception as e:
                index_ctx.error(f"{type(e).__name__}: {e}")
                self.logger.record_index_failure(index.name, type(e).__name__)
                outcomes[index.name] = INDEX_ERROR
                continue
            self.logger.record_index_success(
                index.name, skipped=outcome in (ALREADY_INDEXED, SKIPPED)
            )
            outcomes[index.name] = outcome
        return outcomes

    def _handle_job(self, ctx: BoundLogger, job: Job) -> None:
        outcomes = self.index_entity(ctx, job)
        failed = sorted(name for name, outcome in outcomes.items() if outcome == INDEX_ERROR)
        if failed:
            # counted as a failed job by the pool
            raise JobFailed(f"{job.entity_type} {job.entity_id}: failed in {', '.join(failed)}")

    def process_history(
        self,
        ctx: BoundLogger,
        pool: WorkerPool,
        stop_event: threading.Event,
    ) -> int:
        """
        Walk the history from offset 0 and submit one job per entry.

        Returns:
            Number of jobs dispatched

        Raises:
            EpochInterrupted: If ``stop_event`` is set between pages
            ContentServerError: If a page cannot be fetched
        """
        cursor = HistoryCursor(limit=self.history_page_size, server_name=self.server_name)
        dispatched = 0

        while cursor.more_data:
            if stop_event.is_set():
                raise EpochInterrupted("Execution interrupted")

            self.state = self.FETCHING_HISTORY
            ctx.info("Fetching history", offset=cursor.offset)
            page = self.client.get_history(cursor.params())

            self.state = self.DISPATCHING
            ctx.info(f"Processing {len(page.events)} entries")
            for entry in page.events:
                pool.submit(Job(entry.entity_type, entry.entity_id))
                dispatched += 1

            cursor.advance(page)

        return dispatched

    def run_epoch(self, stop_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        """
        Replay the history through the workers, then update tiles.

        Returns:
            Summary dict with dispatched, failed and tiles

        Raises:
            EpochInterrupted: If stopped during the history replay
            ContentServerError: If the history cannot be fetched (tiles are skipped)
            SQLAlchemyError: If the tile scene query fails
        """
        stop_event = stop_event or threading.Event()
        self.epoch += 1
        ctx = self.logger.bind(epoch=self.epoch)

        ctx.info(f"Starting {self.index_workers} workers")
        pool = WorkerPool(self.index_workers, self._handle_job, logger=self.logger, ctx=ctx)
        try:
            with pool:
                try:
                    dispatched = self.process_history(ctx, pool, stop_event)
                finally:
                    # leaving the block closes the queue and waits for the workers
                    self.state = self.DRAINING
                    ctx.info("Waiting for workers...")
        finally:
            self.state = self.IDLE

        ctx.info("Processing tiles...")
        self.state = self.PROJECTING
        try:
            tiles = index_tiles(self.session_factory, 0, logger=self.logger)
        finally:
            self.state = self.IDLE

        summary = {"dispatched": dispatched, "failed": pool.failed, "tiles": tiles}
        ctx.info("Epoch complete", dispatched=dispatched, processed=pool.processed)
        return summary

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Run epochs until ``stop_event`` is set.

        The first epoch starts right away; each following one starts
        ``index_interval`` seconds after the previous one finished. Failed
        epochs are logged and retried on schedule. Setting the event wakes
        the loop immediately; an epoch in progress stops dispatching and
        waits for its queued jobs.
        """
        stop_event = stop_event or threading.Event()
        last_run: Optional[float] = None

        while not stop_event.is_set():
            if last_run is not None:
                remaining = self.index_interval - (time.monotonic() - last_run)
                if remaining > 0:
                    self.state = self.IDLE
                    stop_event.wait(remaining)
                    continue

            try:
                self.run_epoch(stop_event)
                self.logger.record_epoch(success=True)
            except EpochInterrupted:
                self.logger.info("Epoch interrupted", epoch=self.epoch)
                self.logger.record_epoch(success=False)
            except Exception as e:
                self.logger.error("Epoch failed", epoch=self.epoch, error=f"{type(e).__name__}: {e}")
                self.logger.record_epoch(success=False)
            self.logger.log_metrics_summary()
            last_run = time.monotonic()

        self.state = self.CANCELLED
        self.logger.info("Bye")
