"""Strata storage OpenTelemetry tracing integration.

Provides a tracing decorator for contract operations.

Security:
    - Never export logical paths or filesystem paths in span attributes;
      paths are correlated through their SHA256 hash
    - Only identifiers, versions, checksums and sizes in attributes
    - No credentials in any span attribute
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import os
from collections.abc import Callable, Mapping
from typing import Any, TypeVar, cast

from opentelemetry import trace

from strata.storage.models import StorageOptions, StoredObject, StoredObjectMetadata

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "strata.storage"


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool("STRATA_OTEL_ENABLED", False)


def _scope_ids(options: Any) -> tuple[Any, Any]:
    if isinstance(options, StorageOptions):
        return options.team_id, options.workspace_id
    if isinstance(options, Mapping):
        return options.get("team_id"), options.get("workspace_id")
    return None, None


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    Emits spans named ``strata.storage.<operation>`` with safe attributes
    when ``STRATA_OTEL_ENABLED`` is set.

    Args:
        operation: Operation name (e.g., "store", "retrieve", "list").

    Returns:
        Decorated function that emits OTel spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, *args, **kwargs)

            try:
                arguments = signature.bind_partial(self, *args, **kwargs).arguments
            except TypeError:
                arguments = {}

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"strata.storage.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                span.set_attribute("storage.operation", operation)

                team_id, workspace_id = _scope_ids(arguments.get("options"))
                if team_id:
                    span.set_attribute("strata.team_id", str(team_id))
                if workspace_id:
                    span.set_attribute("strata.workspace_id", str(workspace_id))

                path = arguments.get("path", arguments.get("dir_path"))
                if isinstance(path, str):
                    path_sha256 = hashlib.sha256(path.encode("utf-8")).hexdigest()
                    span.set_attribute("strata.path_sha256", path_sha256)

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    code = getattr(e, "code", None)
                    if code:
                        span.set_attribute("error.code", str(code))
                    raise

                if result is not None:
                    _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes to span safely.

    Only adds checksum, version, size and counts. Never adds paths.
    """
    try:
        metadata: StoredObjectMetadata | None = None

        if isinstance(result, StoredObjectMetadata):
            metadata = result
        elif isinstance(result, StoredObject):
            metadata = result.metadata
        elif isinstance(result, tuple) and len(result) == 2:
            if isinstance(result[1], StoredObjectMetadata):
                metadata = result[1]

        if metadata is not None:
            span.set_attribute("storage.result_backend", metadata.backend.value)
            span.set_attribute("strata.object_size", metadata.size)
            if metadata.checksum:
                span.set_attribute("strata.object_sha256", metadata.checksum)
            if metadata.version:
                span.set_attribute("strata.object_version", metadata.version)
            if metadata.retrieved_via_fallback:
                span.set_attribute("strata.retrieved_via_fallback", True)

        if operation in ("list", "list_versions", "list_branches") and isinstance(result, list):
            span.set_attribute("strata.result_count", len(result))
        if operation == "exists" and isinstance(result, bool):
            span.set_attribute("strata.exists", result)

    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
