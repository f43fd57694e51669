"""loudscan CLI - batch loudness measurement with a resumable cache."""
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

from loudscan.version import __version__
from loudscan.batch.runner import DEFAULT_SAVE_EVERY, default_workers, run_batch
from loudscan.corpus.cache import ResultCache
from loudscan.corpus.files import DEFAULT_EXTENSIONS
from loudscan.errors import MalformedSnapshot, PathNotFound, SnapshotIOError
from loudscan.reporting.batch_summary import (
    build_batch_summary,
    build_cache_summary,
    render_cache_summary,
)


EXIT_OK = 0
EXIT_BAD_ARGS = 2
EXIT_IO_ERROR = 3
EXIT_CACHE_ERROR = 4
EXIT_INTERNAL_ERROR = 5


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_measure(args) -> int:
    """Handle measure command."""
    try:
        result = run_batch(
            args.path,
            args.cache_file,
            extensions=args.ext or DEFAULT_EXTENSIONS,
            workers=max(1, int(args.workers)),
            save_every=args.save_every,
        )
    except MalformedSnapshot as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CACHE_ERROR
    except PathNotFound as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BAD_ARGS
    except SnapshotIOError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_IO_ERROR
    except Exception as e:
        print(f"Internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR

    if args.summary_json:
        summary = build_batch_summary(result)
        Path(args.summary_json).write_text(json.dumps(summary, indent=2), encoding="utf-8")
        print(f"Summary written to: {args.summary_json}", file=sys.stderr)
    return EXIT_OK


def cmd_inspect_cache(args) -> int:
    """Handle inspect-cache command."""
    path = Path(args.cache_file)
    if not path.exists():
        print(f"Error: Cache file not found - {path}", file=sys.stderr)
        return EXIT_BAD_ARGS
    try:
        cache = ResultCache.load(path)
    except MalformedSnapshot as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CACHE_ERROR
    summary = build_cache_summary(cache)
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print(render_cache_summary(summary))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loudscan",
        description="loudscan - batch loudness measurement with a resumable cache"
    )
    parser.add_argument(
        "--version", action="version",
        version=f"loudscan {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print debug diagnostics to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # measure command
    measure_parser = subparsers.add_parser(
        "measure",
        help="Measure a file or every audio file in a folder"
    )
    measure_parser.add_argument(
        "path",
        help="Audio file, or folder scanned non-recursively"
    )
    measure_parser.add_argument(
        "cache_file",
        nargs="?",
        help="JSON cache of earlier results; results are only printed if omitted"
    )
    measure_parser.add_argument(
        "--ext",
        action="append",
        help=f"Audio extension to scan for, repeatable (default: {' '.join(DEFAULT_EXTENSIONS)})"
    )
    measure_parser.add_argument(
        "--workers",
        type=int,
        default=default_workers(),
        help="Parallel workers (default: cpu_count-1)"
    )
    measure_parser.add_argument(
        "--save-every",
        type=int,
        default=DEFAULT_SAVE_EVERY,
        help=f"Save the cache after this many new results (default: {DEFAULT_SAVE_EVERY})"
    )
    measure_parser.add_argument(
        "--summary-json",
        help="Output path for a batch summary JSON"
    )
    measure_parser.set_defaults(func=cmd_measure)

    # inspect-cache command
    inspect_parser = subparsers.add_parser(
        "inspect-cache",
        help="Show statistics of a cache file"
    )
    inspect_parser.add_argument(
        "cache_file",
        help="Path to cache JSON"
    )
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON"
    )
    inspect_parser.set_defaults(func=cmd_inspect_cache)
    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if hasattr(args, "func"):
        sys.exit(args.func(args))
    else:
        parser.print_help()
        sys.exit(EXIT_BAD_ARGS)


if __name__ == "__main__":
    main()
