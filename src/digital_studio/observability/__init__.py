"""Observability module for structured, run-scoped logging."""

from .logging import (
    add_stage_elapsed,
    bind_run_context,
    bind_stage,
    clear_run_context,
    get_current_run_id,
    get_current_stage,
    get_run_logger,
    setup_structured_logging,
)

__all__ = [
    "add_stage_elapsed",
    "bind_run_context",
    "bind_stage",
    "clear_run_context",
    "get_current_run_id",
    "get_current_stage",
    "get_run_logger",
    "setup_structured_logging",
]
