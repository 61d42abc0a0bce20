"""CLI entry point for the showcase server."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from .config import Config, load_config
from .store import DocumentStoreError, GitHubDocumentStore


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(verbose: bool = False, json_output: bool = False) -> None:
    """Log to stderr, as plain text or JSON lines."""
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
        )
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=[handler])
    # httpx logs every GitHub request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _check_required(config: Config) -> bool:
    missing = config.missing_required()
    if missing:
        print(
            f"Error: missing required configuration: {', '.join(missing)}",
            file=sys.stderr,
        )
        print(
            "Set them in the config file or via SHOWCASE_* environment variables",
            file=sys.stderr,
        )
        return False
    return True


async def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP/WebSocket server."""
    config = load_config(args.config)
    if not _check_required(config):
        return 1

    import uvicorn

    from .server import create_app

    host = args.host or config.server.host
    port = args.port or config.server.port

    print(f"Starting {config.server.title}")
    print(f"Document: {config.github.owner}/{config.github.repo}/{config.github.path}")
    print(f"URL: http://{host}:{port}")

    app = create_app(config)
    verbose = getattr(args, "verbose", False)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
    )
    await server.serve()
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check that the games document can be read."""
    config = load_config(args.config)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "missing_config": config.missing_required(),
    }

    store = GitHubDocumentStore.from_config(config.github)
    store_status = store.describe()
    try:
        snapshot = await store.load()
        store_status["reachable"] = True
        store_status["exists"] = snapshot is not None
        store_status["games"] = len(snapshot.entries) if snapshot else 0
        store_status["version"] = store.version
    except DocumentStoreError as e:
        store_status["reachable"] = False
        store_status["error"] = str(e)
    finally:
        await store.close()

    status_data["store"] = store_status

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        print("Showcase Status Check")
        print("=====================")
        if status_data["missing_config"]:
            print(f"Missing config: {', '.join(status_data['missing_config'])}")
        print()
        print(f"Document ({store_status['repository']}/{store_status['path']}):")
        if store_status["reachable"]:
            print("  Status: Reachable")
            if store_status["exists"]:
                print(f"  Games: {store_status['games']}")
                print(f"  Version: {store_status['version']}")
            else:
                print("  Document does not exist yet (created on first add)")
        else:
            print("  Status: Not reachable")
            print(f"  Error: {store_status['error']}")

    return 0 if store_status["reachable"] else 1


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="showcase",
        description="Real-time game showcase board backed by a GitHub document",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none, environment only)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the server")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config, 3000)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config, 0.0.0.0)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check the games document")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    setup_logging(args.verbose, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
