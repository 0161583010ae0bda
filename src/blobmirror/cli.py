"""blobmirror CLI - command-line access to a replicating store.

Usage:
    blobmirror [-b URI ...] [--policy POLICY] [-v] available
    blobmirror [-b URI ...] exists KEY
    blobmirror [-b URI ...] get KEY
    blobmirror [-b URI ...] put KEY [--file PATH] [--no-wait]
    blobmirror [-b URI ...] delete KEY [--no-wait]

Backends come from repeated -b/--backend flags (primary first) or from
BLOBMIRROR_BACKENDS. "get" streams the payload to stdout; "put" reads
stdin unless --file is given. Tracing follows the BLOBMIRROR_OTEL_*
variables (see blobmirror.observability.tracing).

Exit codes:
    0: Success / object exists / store available
    1: Object absent / store unavailable / storage failure
    2: Invalid key or configuration
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import BinaryIO

from blobmirror.config import (
    BACKENDS_ENV,
    ConfigurationError,
    build_store,
    load_settings,
    settings_with_overrides,
)
from blobmirror.observability.tracing import TracingConfigError, configure_tracing
from blobmirror.storage.errors import InvalidKeyError, InvalidStoreUriError, ObjectStorageError
from blobmirror.storage.replicating_store import ReplicatingStore

EXIT_OK = 0
EXIT_FALSE = 1
EXIT_USAGE = 2

DEFAULT_WAIT_SECONDS = 300.0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blobmirror",
        description="Store and retrieve blobs across mirrored backends.",
    )
    parser.add_argument(
        "-b",
        "--backend",
        dest="backends",
        action="append",
        metavar="URI",
        help="Backend URI; repeat for secondaries (default: $BLOBMIRROR_BACKENDS)",
    )
    parser.add_argument(
        "--policy",
        choices=["private", "public-read"],
        help="Access policy for writes (default: $BLOBMIRROR_ACCESS_POLICY or private)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("available", help="Check that the primary backend responds")

    exists_parser = subparsers.add_parser("exists", help="Check whether KEY exists")
    exists_parser.add_argument("key")

    get_parser = subparsers.add_parser("get", help="Write the object at KEY to stdout")
    get_parser.add_argument("key")

    put_parser = subparsers.add_parser("put", help="Store stdin (or --file) at KEY")
    put_parser.add_argument("key")
    put_parser.add_argument("--file", dest="file_path", help="Read payload from this file")
    put_parser.add_argument("--no-wait", action="store_true", help="Do not wait for mirroring")

    delete_parser = subparsers.add_parser("delete", help="Delete the object at KEY")
    delete_parser.add_argument("key")
    delete_parser.add_argument("--no-wait", action="store_true", help="Do not wait for mirroring")

    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _open_store(args: argparse.Namespace) -> ReplicatingStore:
    environ = dict(os.environ)
    if args.backends:
        environ[BACKENDS_ENV] = ",".join(args.backends)
    settings = settings_with_overrides(load_settings(environ), access_policy=args.policy)
    return build_store(settings)


def _read_payload(file_path: str | None, stdin: BinaryIO) -> bytes:
    if file_path is None:
        return stdin.read()
    with open(file_path, "rb") as f:
        return f.read()


def _wait(store: ReplicatingStore, no_wait: bool) -> None:
    if no_wait:
        return
    if not store.wait_for_replication(DEFAULT_WAIT_SECONDS):
        print("Warning: replication still in progress", file=sys.stderr)


def _run_command(
    store: ReplicatingStore,
    args: argparse.Namespace,
    stdin: BinaryIO,
    stdout: BinaryIO,
) -> int:
    if args.command == "available":
        available = store.available()
        print("available" if available else "unavailable", file=sys.stderr)
        return EXIT_OK if available else EXIT_FALSE

    obj = store[args.key]

    if args.command == "exists":
        return EXIT_OK if obj.exists() else EXIT_FALSE

    if args.command == "get":
        if obj.stream(stdout.write):
            stdout.flush()
            return EXIT_OK
        print(f"Not found: {args.key}", file=sys.stderr)
        return EXIT_FALSE

    if args.command == "put":
        obj.write(_read_payload(args.file_path, stdin))
        _wait(store, args.no_wait)
        return EXIT_OK

    if args.command == "delete":
        deleted = obj.delete()
        _wait(store, args.no_wait)
        if not deleted:
            print(f"Not found: {args.key}", file=sys.stderr)
        return EXIT_OK if deleted else EXIT_FALSE

    print(f"Error: Unknown command: {args.command}", file=sys.stderr)
    return EXIT_USAGE


def main(
    argv: list[str] | None = None,
    stdin: BinaryIO | None = None,
    stdout: BinaryIO | None = None,
) -> int:
    """Main entry point for the blobmirror CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])
        stdin: Binary payload source for "put" (defaults to sys.stdin.buffer)
        stdout: Binary sink for "get" (defaults to sys.stdout.buffer)

    Returns:
        Exit code (0, 1 or 2)
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        configure_tracing()
    except TracingConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        store = _open_store(args)
    except (ConfigurationError, InvalidStoreUriError) as e:
        print(f"Error: {e}", file=sys.stderr)
        for detail in getattr(e, "errors", []):
            print(f"  {detail}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return _run_command(
            store,
            args,
            stdin if stdin is not None else sys.stdin.buffer,
            stdout if stdout is not None else sys.stdout.buffer,
        )
    except InvalidKeyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except ObjectStorageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FALSE
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FALSE
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
