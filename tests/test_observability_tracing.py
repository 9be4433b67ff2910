"""Tests for Strata OpenTelemetry tracing configuration.

- Tracing OFF by default, ON via STRATA_OTEL_ENABLED=1
- Fail-closed only when STRATA_REQUIRE_OTEL=1 and init fails
- Tests use the in-memory exporter (no external collector required)
"""

from __future__ import annotations

import os
from typing import Any
from unittest.mock import patch

import pytest

TRACING_ENV_VARS = [
    "STRATA_OTEL_ENABLED",
    "STRATA_REQUIRE_OTEL",
    "STRATA_OTEL_SERVICE_NAME",
    "STRATA_OTEL_EXPORTER",
    "STRATA_OTEL_TEST_CAPTURE",
    "STRATA_OTEL_RESOURCE_ATTRS",
]


@pytest.fixture(autouse=True)
def reset_tracing_env() -> Any:
    """Reset tracing environment and state before each test."""
    original_env = {k: os.environ.get(k) for k in TRACING_ENV_VARS}

    for k in TRACING_ENV_VARS:
        if k in os.environ:
            del os.environ[k]

    from strata.observability.tracing import reset_tracing

    reset_tracing()

    yield

    for k in TRACING_ENV_VARS:
        if k in os.environ:
            del os.environ[k]

    for k, v in original_env.items():
        if v is not None:
            os.environ[k] = v

    reset_tracing()


class TestTracingConfiguration:
    """Tests for tracing configuration behavior."""

    def test_tracing_disabled_by_default(self) -> None:
        """Tracing should be OFF when STRATA_OTEL_ENABLED is not set."""
        from strata.observability.tracing import configure_tracing, get_test_spans

        result = configure_tracing()
        assert result is False, "Tracing should be disabled by default"

        spans = get_test_spans()
        assert len(spans) == 0, "No spans should be captured when tracing is disabled"

    def test_tracing_enabled_with_env_var(self) -> None:
        """Tracing should be ON when STRATA_OTEL_ENABLED=1."""
        os.environ["STRATA_OTEL_ENABLED"] = "1"
        os.environ["STRATA_OTEL_TEST_CAPTURE"] = "1"

        from strata.observability.tracing import configure_tracing

        result = configure_tracing()
        assert result is True, "Tracing should be enabled when STRATA_OTEL_ENABLED=1"

    def test_tracing_idempotent(self) -> None:
        """configure_tracing() should be idempotent."""
        os.environ["STRATA_OTEL_ENABLED"] = "1"
        os.environ["STRATA_OTEL_TEST_CAPTURE"] = "1"

        from strata.observability.tracing import configure_tracing

        result1 = configure_tracing()
        result2 = configure_tracing()

        assert result1 == result2, "configure_tracing should be idempotent"

    def test_require_otel_fails_closed(self) -> None:
        """STRATA_REQUIRE_OTEL=1 should fail startup if tracing init fails."""
        os.environ["STRATA_OTEL_ENABLED"] = "1"
        os.environ["STRATA_REQUIRE_OTEL"] = "1"

        from strata.observability.tracing import TracingConfigError, reset_tracing

        reset_tracing()

        with patch(
            "opentelemetry.sdk.trace.TracerProvider",
            side_effect=Exception("Simulated init failure"),
        ):
            from strata.observability import tracing

            tracing._is_configured = False
            tracing._tracer_provider = None

            with pytest.raises(TracingConfigError) as exc_info:
                tracing.configure_tracing()

            assert "configuration failed" in str(exc_info.value).lower()

    def test_init_failure_tolerated_without_require(self) -> None:
        """Without STRATA_REQUIRE_OTEL a failed init just disables tracing."""
        os.environ["STRATA_OTEL_ENABLED"] = "1"

        with patch(
            "opentelemetry.sdk.trace.TracerProvider",
            side_effect=Exception("Simulated init failure"),
        ):
            from strata.observability import tracing

            tracing._is_configured = False
            tracing._tracer_provider = None

            assert tracing.configure_tracing() is False


class TestTracingHelpers:
    """Tests for environment parsing and span helpers."""

    def test_resource_attrs_parsing(self) -> None:
        """Comma-separated k=v pairs are parsed; malformed pairs are skipped."""
        from strata.observability.tracing import _parse_resource_attrs

        assert _parse_resource_attrs("env=prod, region = eu ,broken") == {
            "env": "prod",
            "region": "eu",
        }
        assert _parse_resource_attrs("") == {}

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("1", True), ("true", True), ("YES", True), ("0", False), ("", False), ("maybe", False)],
    )
    def test_env_bool(self, value: str, expected: bool) -> None:
        """Boolean env vars accept the usual spellings."""
        from strata.observability.tracing import _get_env_bool

        os.environ["STRATA_OTEL_ENABLED"] = value

        assert _get_env_bool("STRATA_OTEL_ENABLED") is expected

    def test_no_trace_id_outside_span(self) -> None:
        """There is no trace id without an active span."""
        from strata.observability.tracing import get_current_trace_id

        assert get_current_trace_id() is None

    def test_trace_id_inside_span(self) -> None:
        """The active span's trace id is returned as 32 hex chars."""
        os.environ["STRATA_OTEL_ENABLED"] = "1"
        os.environ["STRATA_OTEL_TEST_CAPTURE"] = "1"

        from opentelemetry import trace

        from strata.observability.tracing import configure_tracing, get_current_trace_id

        configure_tracing()
        with trace.get_tracer("tests").start_as_current_span("probe"):
            trace_id = get_current_trace_id()

        assert trace_id is not None
        assert len(trace_id) == 32

    def test_clear_test_spans(self) -> None:
        """Captured spans can be cleared between assertions."""
        os.environ["STRATA_OTEL_ENABLED"] = "1"
        os.environ["STRATA_OTEL_TEST_CAPTURE"] = "1"

        from opentelemetry import trace

        from strata.observability.tracing import (
            clear_test_spans,
            configure_tracing,
            get_test_spans,
        )

        configure_tracing()
        with trace.get_tracer("tests").start_as_current_span("probe"):
            pass

        assert [s.name for s in get_test_spans()] == ["probe"]
        clear_test_spans()
        assert get_test_spans() == []
