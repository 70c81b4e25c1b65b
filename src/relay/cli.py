"""Command-line interface for Relay."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relay",
        description="Expose an event-driven coding agent over the Agent Client Protocol.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run Relay as an ACP server",
    )
    serve_parser.add_argument(
        "--agent",
        required=True,
        help="Agent factory as 'package.module:attribute'",
    )
    serve_parser.add_argument(
        "--mode",
        default="code",
        help="Initial mode for new sessions (default: 'code')",
    )
    serve_parser.add_argument(
        "--model",
        help="Model id passed to new agents",
    )
    serve_parser.add_argument(
        "--followup-timeout",
        type=float,
        default=30.0,
        help="Seconds before an unanswered follow-up question is auto-continued (default: 30)",
    )
    serve_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run Relay CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return _run_serve(args)

    return 0


def _get_log_dir() -> Path:
    """Get platform-appropriate log directory."""
    import os
    import platform

    if platform.system() == "Darwin":
        # macOS: ~/Library/Logs/Relay/
        return Path.home() / "Library" / "Logs" / "Relay"
    elif platform.system() == "Windows":
        # Windows: %LOCALAPPDATA%\Relay\Logs\
        local_app_data = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return local_app_data / "Relay" / "Logs"
    else:
        # Linux/Unix: ~/.local/state/relay/ (XDG Base Directory)
        xdg_state = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
        return xdg_state / "relay"


def _configure_logging(verbose: bool) -> Path:
    import logging
    from datetime import datetime

    log_level = logging.DEBUG if verbose else logging.WARNING

    log_dir = _get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"relay-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"

    # Stdout carries the ACP stream, so logs go to stderr and the file only.
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(log_file),
    ]

    logging.basicConfig(
        level=log_level,
        format="[Relay] %(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )

    logging.info(f"Relay log file: {log_file}")
    return log_file


def _run_serve(args: argparse.Namespace) -> int:
    """Run the ACP server."""
    _configure_logging(args.verbose)

    try:
        from relay.acp_server import run_server
        from relay.extension import load_agent_factory

        agent_factory = load_agent_factory(args.agent)
        asyncio.run(
            run_server(
                agent_factory,
                mode=args.mode,
                model=args.model,
                followup_timeout=args.followup_timeout,
            )
        )
        return 0
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ImportError:
        print(
            "Error: agent-client-protocol package not installed.\n"
            "Install with: uv add agent-client-protocol",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
