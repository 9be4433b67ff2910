"""Tests for storage operation spans.

Spans carry backend, operation, scope ids and a hash of the logical path;
never the path itself or the content.
"""

from __future__ import annotations

import hashlib
import os
from typing import Any

import pytest

from strata.storage.errors import ObjectNotFoundError
from tests.fakes import requires_git

TRACING_ENV_VARS = ["STRATA_OTEL_ENABLED", "STRATA_OTEL_TEST_CAPTURE", "STRATA_REQUIRE_OTEL"]


@pytest.fixture(autouse=True)
def capture_spans() -> Any:
    """Enable in-memory span capture for each test."""
    original_env = {k: os.environ.get(k) for k in TRACING_ENV_VARS}
    os.environ["STRATA_OTEL_ENABLED"] = "1"
    os.environ["STRATA_OTEL_TEST_CAPTURE"] = "1"

    from strata.observability.tracing import configure_tracing, reset_tracing

    reset_tracing()
    configure_tracing()

    yield

    for k, v in original_env.items():
        if v is None:
            os.environ.pop(k, None)
        else:
            os.environ[k] = v
    reset_tracing()


def _spans(name: str) -> list[Any]:
    from strata.observability.tracing import get_test_spans

    return [s for s in get_test_spans() if s.name == name]


class TestObjectProviderSpans:
    """Spans emitted by the object provider."""

    def test_store_span_attributes(self, object_provider: Any, options: dict[str, Any]) -> None:
        """store emits a span with safe attributes only."""
        metadata = object_provider.store("secret/plan.pdf", b"%PDF", options)

        (span,) = _spans("strata.storage.store")
        attrs = dict(span.attributes)

        assert attrs["storage.backend"] == "object"
        assert attrs["storage.operation"] == "store"
        assert attrs["strata.team_id"] == "t1"
        assert attrs["strata.workspace_id"] == "w1"
        assert attrs["strata.path_sha256"] == hashlib.sha256(b"secret/plan.pdf").hexdigest()
        assert attrs["strata.object_sha256"] == metadata.checksum
        assert attrs["strata.object_version"] == metadata.version
        assert attrs["strata.object_size"] == 4

    def test_no_raw_path_in_attributes(self, object_provider: Any, options: dict[str, Any]) -> None:
        """Logical paths never appear in span attributes."""
        object_provider.store("secret/plan.pdf", b"%PDF", options)
        object_provider.retrieve("secret/plan.pdf", options)

        from strata.observability.tracing import get_test_spans

        for span in get_test_spans():
            for value in dict(span.attributes).values():
                assert "secret/plan.pdf" not in str(value)

    def test_error_attributes(self, object_provider: Any, options: dict[str, Any]) -> None:
        """Failures mark the span with the error type and code."""
        with pytest.raises(ObjectNotFoundError):
            object_provider.retrieve("missing.pdf", options)

        (span,) = _spans("strata.storage.retrieve")
        attrs = dict(span.attributes)

        assert attrs["error"] is True
        assert attrs["error.type"] == "ObjectNotFoundError"
        assert attrs["error.code"] == "not_found"

    def test_list_and_exists_results(self, object_provider: Any, options: dict[str, Any]) -> None:
        """Listings record a count and probes record the outcome."""
        object_provider.store("a.pdf", b"a", options)
        object_provider.store("b.pdf", b"b", options)

        object_provider.list("", options)
        object_provider.exists("a.pdf", options)

        assert dict(_spans("strata.storage.list")[0].attributes)["strata.result_count"] == 2
        assert dict(_spans("strata.storage.exists")[0].attributes)["strata.exists"] is True

    def test_no_spans_when_disabled(self, object_provider: Any, options: dict[str, Any]) -> None:
        """Nothing is recorded with STRATA_OTEL_ENABLED unset."""
        from strata.observability.tracing import clear_test_spans, get_test_spans

        os.environ.pop("STRATA_OTEL_ENABLED")
        clear_test_spans()

        object_provider.store("a.pdf", b"a", options)

        assert get_test_spans() == []


@requires_git
class TestHybridSpans:
    """Spans emitted through the hybrid router."""

    def test_router_and_provider_spans(self, router: Any, options: dict[str, Any]) -> None:
        """A routed write produces a hybrid span and a provider span."""
        router.store("src/app.py", b"print(1)\n", options)

        backends = sorted(dict(s.attributes)["storage.backend"] for s in _spans("strata.storage.store"))
        assert backends == ["git", "hybrid"]

    def test_fallback_flag(self, router: Any, options: dict[str, Any]) -> None:
        """Fallback reads are flagged on the router span."""
        router.store("notes.md", b"# Notes", {**options, "force_backend": "object"})

        from strata.observability.tracing import clear_test_spans

        clear_test_spans()
        router.retrieve("notes.md", options)

        hybrid = [
            s for s in _spans("strata.storage.retrieve")
            if dict(s.attributes)["storage.backend"] == "hybrid"
        ]
        assert dict(hybrid[0].attributes)["strata.retrieved_via_fallback"] is True
