"""
Logging configuration for the CAFormer Tagger.
"""

import logging
from typing import Any, Dict, Optional
from rich.console import Console
from rich.logging import RichHandler
from .config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Configure clean, simple logging output."""

    # Configure standard library logging with Rich handler
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, (level or settings.log_level).upper()),
        handlers=[RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=True
        )],
        force=True  # Override any existing configuration
    )

    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("onnxruntime").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class MetricsLogger:
    """Logger for tracking inference request metrics."""

    def __init__(self):
        self.logger = get_logger("metrics")
        self.metrics: Dict[str, Any] = {
            "requests_completed": 0,
            "tags_emitted": 0,
            "failures": 0,
            "processing_time": 0.0,
        }

    def log_request_completed(self, source: str, tags_count: int, processing_time: float) -> None:
        """Log a successfully tagged image."""
        self.metrics["requests_completed"] += 1
        self.metrics["tags_emitted"] += tags_count
        self.metrics["processing_time"] += processing_time

        # Only log individual images at DEBUG level to avoid spam
        self.logger.debug(
            f"Image tagged: {source} | Tags: {tags_count} | Time: {processing_time:.3f}s | "
            f"Total: {self.metrics['requests_completed']} images, {self.metrics['tags_emitted']} tags"
        )

    def log_request_failure(self, source: str, error: str) -> None:
        """Log a failed inference request."""
        self.metrics["failures"] += 1
        self.logger.warning(f"Tagging failed: {source} | Error: {error}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        return self.metrics.copy()
