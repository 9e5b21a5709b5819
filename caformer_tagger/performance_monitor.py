"""
Performance monitoring utilities for the CAFormer Tagger.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Optional, Any
from dataclasses import dataclass, field
from .logging import get_logger

STAGES = ("preprocess", "inference", "postprocess")


@dataclass
class StageTiming:
    """Accumulated timing for one pipeline stage."""

    calls: int = 0
    total_time: float = 0.0

    @property
    def average_time(self) -> Optional[float]:
        if self.calls == 0:
            return None
        return self.total_time / self.calls


@dataclass
class PerformanceMetrics:
    """Performance metrics tracking."""

    stages: Dict[str, StageTiming] = field(
        default_factory=lambda: {name: StageTiming() for name in STAGES}
    )

    # Request tracking
    requests_processed: int = 0
    requests_failed: int = 0
    total_request_time: float = 0.0

    def average_request_time(self) -> float:
        if self.requests_processed == 0:
            return 0.0
        return self.total_request_time / self.requests_processed

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        data: Dict[str, Any] = {
            "requests_processed": self.requests_processed,
            "requests_failed": self.requests_failed,
            "average_request_time": round(self.average_request_time(), 3),
        }
        for name, timing in self.stages.items():
            data[f"{name}_calls"] = timing.calls
            data[f"average_{name}_time"] = round(timing.average_time or 0, 3)
        return data


class PerformanceMonitor:
    """Performance monitoring and metrics collection."""

    def __init__(self):
        self.logger = get_logger("performance")
        self.metrics = PerformanceMetrics()
        self.start_time = time.time()
        # Stages run on worker threads in the async pipeline
        self._lock = threading.Lock()

    def record_stage(self, stage: str, duration: float):
        """Record the duration of a pipeline stage."""
        with self._lock:
            timing = self.metrics.stages.setdefault(stage, StageTiming())
            timing.calls += 1
            timing.total_time += duration

    @contextmanager
    def time_stage(self, stage: str):
        """Time the wrapped block as ``stage``; failed blocks are not recorded."""
        start = time.perf_counter()
        yield
        self.record_stage(stage, time.perf_counter() - start)

    def record_request_processed(self, processing_time: float):
        """Record request completion."""
        with self._lock:
            self.metrics.requests_processed += 1
            self.metrics.total_request_time += processing_time

    def record_request_failed(self):
        """Record a failed request."""
        with self._lock:
            self.metrics.requests_failed += 1

    def get_runtime_seconds(self) -> float:
        """Get total runtime in seconds."""
        return time.time() - self.start_time

    def log_performance_summary(self):
        """Log a summary of performance metrics."""
        runtime = self.get_runtime_seconds()
        metrics_dict = self.metrics.to_dict()

        self.logger.info(
            f"📈 Performance Summary: Runtime {runtime:.1f}s, "
            f"{metrics_dict['requests_processed']} images tagged, "
            f"{metrics_dict['requests_failed']} failed"
        )

        if self.metrics.requests_processed > 0:
            self.logger.info(
                f"🎯 Stage averages: "
                f"preprocess {metrics_dict['average_preprocess_time']:.3f}s, "
                f"inference {metrics_dict['average_inference_time']:.3f}s, "
                f"postprocess {metrics_dict['average_postprocess_time']:.3f}s"
            )

    def get_metrics_dict(self) -> Dict[str, Any]:
        """Get all metrics as a dictionary."""
        runtime = self.get_runtime_seconds()
        metrics_dict = self.metrics.to_dict()
        metrics_dict["runtime_seconds"] = round(runtime, 2)
        return metrics_dict

    def reset(self):
        """Reset all collected metrics."""
        with self._lock:
            self.metrics = PerformanceMetrics()
            self.start_time = time.time()


# Global performance monitor instance
performance_monitor = PerformanceMonitor()
