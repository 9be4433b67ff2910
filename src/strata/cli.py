"""Strata CLI - command-line front end over the hybrid storage router.

Usage:
    python -m strata store PATH --team T --workspace W [--input FILE]
    python -m strata retrieve PATH --team T --workspace W [--output FILE] [--version V]
    python -m strata delete PATH --team T --workspace W
    python -m strata list [DIR] --team T --workspace W [--max-keys N]
    python -m strata exists PATH --team T --workspace W
    python -m strata metadata PATH --team T --workspace W
    python -m strata versions PATH --team T --workspace W
    python -m strata sync FROM TO PATH --team T --workspace W [--target-repo T/W]

Configuration comes from ``STRATA_*`` environment variables. Tracing is enabled with
``STRATA_OTEL_ENABLED=1``.

Exit codes:
    0: Success
    1: Storage, validation or configuration error
    2: Not found
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from strata.observability.tracing import TracingConfigError, configure_tracing
from strata.storage.contract import WorkspaceStorage
from strata.storage.errors import ObjectNotFoundError, StorageConfigError, StorageError
from strata.storage.factory import create_hybrid_router

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _options(args: argparse.Namespace) -> dict[str, Any]:
    """Build the options mapping from common arguments."""
    options: dict[str, Any] = {
        "team_id": args.team,
        "workspace_id": args.workspace,
        "author": args.author,
        "commit_message": args.message,
        "force_backend": args.backend,
        "preferred_backend": args.prefer,
        "version": args.version,
        "branch": args.branch,
        "bucket": args.bucket,
    }
    for name in ("max_keys", "source_repo", "target_repo", "source_bucket", "target_bucket"):
        value = getattr(args, name, None)
        if value is not None:
            options[name] = value
    return options


def _read_input(input_path: str | None) -> bytes:
    if input_path:
        return Path(input_path).read_bytes()
    return sys.stdin.buffer.read()


def cmd_store(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    content = _read_input(args.input)
    metadata = storage.store(args.path, content, _options(args))
    _output_json(metadata.to_dict())
    return EXIT_OK


def cmd_retrieve(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    """Write content to ``--output`` and print metadata, or stream content to stdout."""
    stored = storage.retrieve(args.path, _options(args))
    if args.output:
        Path(args.output).write_bytes(stored.content)
        _output_json(stored.metadata.to_dict())
    else:
        sys.stdout.buffer.write(stored.content)
        sys.stdout.flush()
    return EXIT_OK


def cmd_delete(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    storage.delete(args.path, _options(args))
    _output_json({"deleted": True, "path": args.path})
    return EXIT_OK


def cmd_list(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    entries = storage.list(args.dir, _options(args))
    _output_json([entry.to_dict() for entry in entries])
    return EXIT_OK


def cmd_exists(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    _output_json({"exists": storage.exists(args.path, _options(args)), "path": args.path})
    return EXIT_OK


def cmd_metadata(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    _output_json(storage.get_metadata(args.path, _options(args)).to_dict())
    return EXIT_OK


def cmd_versions(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    entries = storage.list_versions(args.path, _options(args))
    _output_json([entry.to_dict() for entry in entries])
    return EXIT_OK


def cmd_sync(args: argparse.Namespace, storage: WorkspaceStorage) -> int:
    result = storage.sync(args.from_backend, args.to_backend, args.path, _options(args))
    _output_json(result.to_dict())
    return EXIT_OK


COMMANDS = {
    "store": cmd_store,
    "retrieve": cmd_retrieve,
    "delete": cmd_delete,
    "list": cmd_list,
    "exists": cmd_exists,
    "metadata": cmd_metadata,
    "versions": cmd_versions,
    "sync": cmd_sync,
}


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--team", required=True, help="Team identifier")
    parser.add_argument("--workspace", required=True, help="Workspace identifier")
    parser.add_argument("--author", help="Author recorded on the write")
    parser.add_argument("--message", help="Commit/version message")
    parser.add_argument(
        "--backend",
        choices=["git", "object", "s3"],
        help="Force a backend instead of the routing heuristics",
    )
    parser.add_argument(
        "--prefer",
        choices=["git", "object", "s3"],
        help="Backend tried first for reads",
    )
    parser.add_argument("--version", help="Pin a read to a historical version")
    parser.add_argument("--branch", help="Git branch (default: configured default branch)")
    parser.add_argument("--bucket", help="Explicit object bucket")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="strata",
        description="Strata - hybrid git/object workspace storage CLI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    store_parser = subparsers.add_parser("store", help="Store a file")
    store_parser.add_argument("path", help="Logical path")
    store_parser.add_argument(
        "--input", metavar="FILE", help="File to read content from (reads stdin if omitted)"
    )

    retrieve_parser = subparsers.add_parser("retrieve", help="Retrieve a file")
    retrieve_parser.add_argument("path", help="Logical path")
    retrieve_parser.add_argument(
        "--output", metavar="FILE", help="Write content here and print metadata"
    )

    for name, help_text in (
        ("delete", "Delete a file from both backends"),
        ("exists", "Check whether a file exists"),
        ("metadata", "Show file metadata"),
        ("versions", "List file versions, newest first"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("path", help="Logical path")

    list_parser = subparsers.add_parser("list", help="List files under a directory")
    list_parser.add_argument("dir", nargs="?", default="", help="Directory (default: root)")
    list_parser.add_argument("--max-keys", type=int, dest="max_keys", help="Listing bound")

    sync_parser = subparsers.add_parser("sync", help="Replicate a file between backends")
    sync_parser.add_argument("from_backend", choices=["git", "object", "s3", "hybrid"])
    sync_parser.add_argument("to_backend", choices=["git", "object", "s3", "hybrid"])
    sync_parser.add_argument("path", help="Logical path")
    sync_parser.add_argument("--source-repo", dest="source_repo", metavar="TEAM/WORKSPACE")
    sync_parser.add_argument("--target-repo", dest="target_repo", metavar="TEAM/WORKSPACE")
    sync_parser.add_argument("--source-bucket", dest="source_bucket")
    sync_parser.add_argument("--target-bucket", dest="target_bucket")

    for sub in subparsers.choices.values():
        _add_common_arguments(sub)

    return parser


def main(argv: list[str] | None = None, storage: WorkspaceStorage | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to ``sys.argv[1:]``).
        storage: Storage to operate on. A hybrid router built from the
            environment when None.

    Exit codes:
        0: Success
        1: Storage, validation or configuration error
        2: Not found
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    try:
        configure_tracing()
    except TracingConfigError as e:
        _output_json({"error": {"code": "tracing_config_error", "message": str(e)}})
        return EXIT_ERROR

    try:
        if storage is None:
            storage = create_hybrid_router()
        return COMMANDS[args.command](args, storage)
    except ObjectNotFoundError as e:
        _output_json({"error": e.to_dict()})
        return EXIT_NOT_FOUND
    except StorageError as e:
        _output_json({"error": e.to_dict()})
        return EXIT_ERROR
    except StorageConfigError as e:
        _output_json({"error": {"code": e.code, "message": str(e)}})
        return EXIT_ERROR
    except OSError as e:
        _output_json({"error": {"code": "io_error", "message": str(e)}})
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
