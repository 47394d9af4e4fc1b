"""Main entry point for seebeads.

Usage:
    python -m seebeads serve                 # Discover .beads/ and serve the dashboard API
    python -m seebeads serve --path FILE     # Serve a specific beads.jsonl or beads.db
    python -m seebeads --version             # Show version
"""

import argparse
import logging
import sys

logger = logging.getLogger("seebeads")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seebeads",
        description="seebeads - live dashboard API for Beads issue logs",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP server")
    serve_parser.add_argument("--path", default=None, help="beads.jsonl, beads.db or a .beads directory")
    serve_parser.add_argument(
        "--format", choices=["jsonl", "sqlite"], default=None, help="Source encoding (default: by file name)"
    )
    serve_parser.add_argument("--host", default=None, help="Host to bind to (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: 3456)")
    serve_parser.add_argument("--agent", action="store_true", help="Agent mode: slower debounce for bursty writers")
    serve_parser.add_argument("--no-watch", action="store_true", help="Do not watch the source for changes")
    return parser


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app
    from .config import Settings, resolve_source
    from .exceptions import SourceError
    from .graph import load
    from .logging_config import configure_logging

    overrides = {
        key: value
        for key, value in {
            "beads_path": args.path,
            "source_format": args.format,
            "host": args.host,
            "port": args.port,
        }.items()
        if value is not None
    }
    if args.agent:
        overrides["agent_mode"] = True
    if args.no_watch:
        overrides["no_watch"] = True

    settings = Settings(**overrides)
    configure_logging(log_level=settings.log_level)

    try:
        source_path, source_format = resolve_source(settings)
        graph = load(str(source_path), source_format)
    except SourceError as e:
        logger.error(f"Failed to load beads: {e}")
        return 1

    app = create_app(graph, settings=settings)
    logger.info(f"seebeads serving {source_path} at {settings.url}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


def main(argv=None) -> int:
    """Main CLI entry point for seebeads."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__

        print(f"seebeads {__version__}")
        return 0

    if args.command == "serve":
        return serve(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
