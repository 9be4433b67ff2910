"""Strata observability module.

Provides the process-wide OpenTelemetry tracer configuration used by the
storage tracing decorator.
"""

from strata.observability.tracing import configure_tracing, get_current_trace_id

__all__ = ["configure_tracing", "get_current_trace_id"]
