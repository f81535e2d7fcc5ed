"""Observability helpers."""

from teamtrack.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_recalculation,
    record_status_transition,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_recalculation",
    "record_status_transition",
]
