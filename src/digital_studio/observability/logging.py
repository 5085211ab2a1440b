"""Run-scoped structured logging.

Every generation run binds a ``run_id`` and ``project`` for its lifetime and
re-binds ``stage`` as it moves through the pipeline. Log events emitted while
a stage is active also carry ``stage_elapsed_ms``, the time spent in it so far.
"""

import logging
import time
from contextvars import ContextVar
from typing import Any

import structlog

RUN_CONTEXT_KEYS = ("run_id", "project", "stage")

current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)
current_stage: ContextVar[str | None] = ContextVar("current_stage", default=None)
stage_started_at: ContextVar[float | None] = ContextVar("stage_started_at", default=None)

_configured = False


def add_stage_elapsed(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor adding milliseconds spent in the current stage."""
    started = stage_started_at.get()
    if started is not None and "stage" in event_dict:
        event_dict["stage_elapsed_ms"] = round((time.monotonic() - started) * 1000)
    return event_dict


def setup_structured_logging(level: str = "INFO") -> None:
    """Configure structlog to emit one JSON line per event with run and stage fields."""
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_stage_elapsed,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))
    _configured = True


def bind_run_context(run_id: str, project_name: str) -> None:
    """Start a run in the current async context; any previous stage is dropped."""
    current_run_id.set(run_id)
    current_stage.set(None)
    stage_started_at.set(None)
    structlog.contextvars.unbind_contextvars("stage")
    structlog.contextvars.bind_contextvars(run_id=run_id, project=project_name)


def bind_stage(stage: str) -> None:
    current_stage.set(stage)
    stage_started_at.set(time.monotonic())
    structlog.contextvars.bind_contextvars(stage=stage)


def clear_run_context() -> None:
    """Remove run fields only; context bound by the caller is left in place."""
    current_run_id.set(None)
    current_stage.set(None)
    stage_started_at.set(None)
    structlog.contextvars.unbind_contextvars(*RUN_CONTEXT_KEYS)


def get_run_logger(name: str = "digital_studio") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def get_current_run_id() -> str | None:
    return current_run_id.get()


def get_current_stage() -> str | None:
    return current_stage.get()
