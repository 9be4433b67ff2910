"""OpenTelemetry tracing configuration for Strata.

Environment Variables:
    STRATA_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    STRATA_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    STRATA_OTEL_SERVICE_NAME: Service name for spans (default: "strata")
    STRATA_OTEL_EXPORTER: "console" or "none" (default: "console")
    STRATA_OTEL_RESOURCE_ATTRS: Comma-separated k=v pairs for resource attributes
    STRATA_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Security:
    - Never export object content, credentials or raw logical paths
    - Team/workspace IDs allowed as internal attributes
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None  # InMemorySpanExporter when test capture is on


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and STRATA_REQUIRE_OTEL=1."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _parse_resource_attrs(attrs_str: str) -> dict[str, str]:
    """Parse comma-separated k=v resource attributes."""
    result: dict[str, str] = {}
    if not attrs_str:
        return result
    for pair in attrs_str.split(","):
        pair = pair.strip()
        if "=" in pair:
            k, v = pair.split("=", 1)
            result[k.strip()] = v.strip()
    return result


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for Strata.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If STRATA_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = _get_env_bool("STRATA_OTEL_ENABLED", False)
    require_otel = _get_env_bool("STRATA_REQUIRE_OTEL", False)
    test_capture = _get_env_bool("STRATA_OTEL_TEST_CAPTURE", False)

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (STRATA_OTEL_ENABLED not set)")
        return False

    # The global tracer provider can only be set once per process.
    if _test_exporter is not None and test_capture:
        return True
    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

        service_name = _get_env_str("STRATA_OTEL_SERVICE_NAME", "strata")
        exporter_type = _get_env_str("STRATA_OTEL_EXPORTER", "console")

        resource_attrs = {"service.name": service_name}
        resource_attrs.update(_parse_resource_attrs(_get_env_str("STRATA_OTEL_RESOURCE_ATTRS")))
        provider = TracerProvider(resource=Resource.create(resource_attrs))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "console":
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            "in-memory" if test_capture else exporter_type,
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def get_current_trace_id() -> str | None:
    """Get the current trace ID for logging correlation.

    Returns:
        Hex string of current trace ID, or None if no active span.
    """
    from opentelemetry import trace

    ctx = trace.get_current_span().get_span_context()
    if ctx is None or not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x")


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from the in-memory exporter (for testing).

    Returns:
        List of captured spans if STRATA_OTEL_TEST_CAPTURE=1, else empty list.
    """
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The global TracerProvider cannot be replaced once set, so the test
    exporter is kept and only its captured spans are cleared.
    """
    global _is_configured

    if _test_exporter is not None:
        _test_exporter.clear()
    _is_configured = False


def clear_test_spans() -> None:
    """Clear captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None:
        _test_exporter.clear()
