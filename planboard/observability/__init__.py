"""Observability helpers."""

from planboard.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_mutation,
    record_persist_failure,
    record_broadcast,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_mutation",
    "record_persist_failure",
    "record_broadcast",
]
