import structlog
import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Any, Iterator, List, Optional
from datetime import datetime

WORKFLOW_CONTEXT_KEYS = ("workflow_id", "step_id", "thread_id")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "contentflow"
) -> None:
    """Configure structlog on top of stdlib logging.

    Every entry carries the service name plus whatever workflow identifiers
    are bound through ``bound_workflow_context``. ``log_format`` selects
    between machine readable JSON and the coloured console renderer.
    """

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=_shared_processors() + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
        add_workflow_context,
    ]


def add_workflow_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the workflow/step being processed to every log entry"""

    event_dict.setdefault("timestamp", datetime.utcnow().isoformat())
    bound = structlog.contextvars.get_contextvars()
    for key in WORKFLOW_CONTEXT_KEYS:
        if key in bound:
            event_dict.setdefault(key, bound[key])
    return event_dict


@contextmanager
def bound_workflow_context(**values: Any) -> Iterator[None]:
    """Bind workflow identifiers for the duration of one request"""

    tokens = structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


class WorkflowLogger:
    """Step and transition events emitted by the engine"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_step_event(
        self,
        event_type: str,
        workflow_id: str,
        step_id: str,
        step_name: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.logger.info(
            event_type,
            category="step",
            workflow_id=workflow_id,
            step_id=step_id,
            step_name=step_name,
            **(data or {}),
            **kwargs
        )

    def log_workflow_transition(
        self,
        workflow_id: str,
        from_step: Optional[str],
        to_step: Optional[str],
        condition: Optional[str] = None,
        state_summary: Optional[Dict[str, Any]] = None
    ):
        """Step to step moves; both ends are None for workflow level events"""

        self.logger.info(
            "workflow_transition",
            category="transition",
            workflow_id=workflow_id,
            transition=f"{from_step or '-'} -> {to_step or '-'}",
            condition=condition,
            **(state_summary or {})
        )


workflow_logger = WorkflowLogger("contentflow")


@dataclass
class LatencyStats:
    count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "min": self.min_ms or 0.0,
            "max": self.max_ms,
        }


class MetricsCollector:
    """Counters, gauges and latencies kept in process and echoed at debug level"""

    def __init__(self, logger: Optional[WorkflowLogger] = None):
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._latencies: Dict[str, LatencyStats] = {}
        self._logger = (logger or workflow_logger).logger

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        self._latencies.setdefault(operation, LatencyStats()).add(duration_ms)
        self._emit("latency", operation, round(duration_ms, 2), tags)

    @contextmanager
    def timer(self, operation: str, tags: Optional[Dict[str, str]] = None) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_latency(operation, (time.perf_counter() - started) * 1000, tags)

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self._counters[name] = self._counters.get(name, 0) + value
        self._emit("counter", name, value, tags)

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self._gauges[name] = value
        self._emit("gauge", name, value, tags)

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def get_metrics_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {**self._counters, **self._gauges}
        for operation, stats in self._latencies.items():
            summary[f"latency.{operation}"] = stats.summary()
        return summary

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._latencies.clear()

    def _emit(self, metric_type: str, name: str, value: float, tags: Optional[Dict[str, str]]) -> None:
        self._logger.debug("metric", metric_type=metric_type, name=name, value=value, tags=tags or {})


metrics = MetricsCollector()
