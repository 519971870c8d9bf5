"""
Structured logging system for glass.

Provides centralized logging with console and file outputs, context
binding for per-epoch/per-worker/per-entity fields, and metrics tracking
for monitoring indexer health.
"""

import copy
import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring indexing runs.
    """

    def __init__(
        self,
        name: str = "glass",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self.logger.propagate = False

        # Workers record metrics concurrently
        self._metrics_lock = threading.Lock()
        self.metrics = self._empty_metrics()

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"glass_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    @staticmethod
    def _empty_metrics() -> Dict[str, Any]:
        return {
            "api_calls": 0,
            "entities_attempted": 0,
            "entities_indexed": 0,
            "entities_skipped": 0,
            "entities_failed": 0,
            "errors_by_type": {},
            "index_success_rate": {},
            "tiles_upserted": 0,
            "tiles_failed": 0,
            "invalid_pointers": 0,
            "epochs_completed": 0,
            "epochs_failed": 0,
        }

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str, sort_keys=True)}"
        self.logger.log(level, message)

    def bind(self, **fields) -> "BoundLogger":
        """Return a logger that adds ``fields`` to every message."""
        return BoundLogger(self, fields)

    # Metric tracking methods

    def record_api_call(self):
        """Increment API call counter."""
        with self._metrics_lock:
            self.metrics["api_calls"] += 1

    def record_index_attempt(self, index: str):
        """Record an indexing attempt for an index."""
        with self._metrics_lock:
            self.metrics["entities_attempted"] += 1
            stats = self.metrics["index_success_rate"].setdefault(
                index, {"attempts": 0, "successes": 0}
            )
            stats["attempts"] += 1

    def record_index_success(self, index: str, skipped: bool = False):
        """Record a successful run; ``skipped`` marks a no-op (already indexed or other kind)."""
        with self._metrics_lock:
            if skipped:
                self.metrics["entities_skipped"] += 1
            else:
                self.metrics["entities_indexed"] += 1
            if index in self.metrics["index_success_rate"]:
                self.metrics["index_success_rate"][index]["successes"] += 1

    def record_index_failure(self, index: str, error_type: str):
        """Record an indexing failure."""
        with self._metrics_lock:
            self.metrics["entities_failed"] += 1
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def record_tile_upsert(self):
        with self._metrics_lock:
            self.metrics["tiles_upserted"] += 1

    def record_tile_failure(self, error_type: str):
        with self._metrics_lock:
            self.metrics["tiles_failed"] += 1
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def record_invalid_pointer(self):
        with self._metrics_lock:
            self.metrics["invalid_pointers"] += 1

    def record_epoch(self, success: bool):
        with self._metrics_lock:
            if success:
                self.metrics["epochs_completed"] += 1
            else:
                self.metrics["epochs_failed"] += 1

    def get_metrics(self) -> dict:
        """Return a snapshot of current metrics."""
        with self._metrics_lock:
            metrics_copy = copy.deepcopy(self.metrics)
        for stats in metrics_copy["index_success_rate"].values():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def reset_metrics(self):
        with self._metrics_lock:
            self.metrics = self._empty_metrics()

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["entities_attempted"]
        total_failed = metrics["entities_failed"]
        overall_rate = 0
        if total_attempts > 0:
            overall_rate = round((total_attempts - total_failed) / total_attempts * 100, 1)

        self.info("=== Indexing Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Entities: {metrics['entities_indexed']} indexed, "
            f"{metrics['entities_skipped']} skipped, "
            f"{total_failed} failed of {total_attempts} ({overall_rate}% success)"
        )
        self.info(
            f"Tiles: {metrics['tiles_upserted']} upserted, {metrics['tiles_failed']} failed, "
            f"{metrics['invalid_pointers']} invalid pointers"
        )
        self.info(f"Epochs: {metrics['epochs_completed']} completed, {metrics['epochs_failed']} failed")

        if metrics["index_success_rate"]:
            self.info("Index Success Rates:")
            for index, stats in metrics["index_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {index}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


class BoundLogger:
    """
    Logger view carrying a fixed set of context fields.

    Instances are immutable: ``bind`` returns a new BoundLogger with the
    merged fields, so a context can be handed from the orchestrator to a
    worker to an index without any shared state being mutated.
    """

    def __init__(self, parent: StructuredLogger, fields: Dict[str, Any]):
        self.parent = parent
        self.fields = dict(fields)

    def bind(self, **fields) -> "BoundLogger":
        return BoundLogger(self.parent, {**self.fields, **fields})

    def debug(self, message: str, **kwargs):
        self.parent.debug(message, **{**self.fields, **kwargs})

    def info(self, message: str, **kwargs):
        self.parent.info(message, **{**self.fields, **kwargs})

    def warning(self, message: str, **kwargs):
        self.parent.warning(message, **{**self.fields, **kwargs})

    def error(self, message: str, **kwargs):
        self.parent.error(message, **{**self.fields, **kwargs})

    def critical(self, message: str, **kwargs):
        self.parent.critical(message, **{**self.fields, **kwargs})


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "glass",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
