# main.py

"""Entry point for the price_monitor application (dashboard or CLI)."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.storage.file_manager import EXPORT_FORMATS

logger = logging.getLogger("price_monitor.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="price_monitor",
        description="Polite, rate-limited product price monitor.",
        epilog="Run without a command to open the dashboard.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Echo INFO log messages to the console.",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Check prices now.")
    run.add_argument(
        "urls",
        nargs="*",
        help="Product URLs to check (default: the watchlist).",
    )
    run.add_argument(
        "-c",
        "--concurrent",
        action="store_true",
        default=False,
        help="Check URLs on a worker pool.",
    )
    run.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        help="Worker count for --concurrent.",
    )

    add = sub.add_parser("add", help="Add a URL to the watchlist.")
    add.add_argument("url")
    add.add_argument("-l", "--label", default="")
    add.add_argument(
        "--site",
        default=None,
        help="Selector set to use (default: matched by domain).",
    )

    remove = sub.add_parser("remove", help="Remove a watched URL.")
    remove.add_argument("url")

    sub.add_parser("list", help="Show the watchlist.")

    history = sub.add_parser("history", help="Show a product's history.")
    history.add_argument("url")
    history.add_argument(
        "--chart",
        action="store_true",
        default=False,
        help="Also export an HTML chart.",
    )

    alerts = sub.add_parser("alerts", help="List price moves.")
    alerts.add_argument(
        "-t",
        "--threshold",
        type=float,
        default=None,
        help="Minimum change in percent.",
    )
    alerts.add_argument(
        "--hours",
        type=float,
        default=None,
        help="Only moves in the last N hours.",
    )
    alerts.add_argument(
        "--drops-only",
        action="store_true",
        default=False,
        help="Only show price drops.",
    )

    sub.add_parser("summary", help="Min / max / avg price per product.")

    export = sub.add_parser("export", help="Export tracked products.")
    export.add_argument(
        "-f",
        "--format",
        choices=list(EXPORT_FORMATS),
        default="json",
        dest="output_format",
    )
    export.add_argument(
        "--history",
        action="store_true",
        default=False,
        help="Also export the full price history as CSV.",
    )

    log = sub.add_parser("log", help="Show recent fetch attempts.")
    log.add_argument("-n", "--limit", type=int, default=20)

    chart = sub.add_parser("chart", help="Export a comparison chart.")
    chart.add_argument("urls", nargs="*")

    return parser


def _run_dashboard() -> None:
    """Launch the interactive Textual dashboard."""
    from src.ui.app import PriceMonitorApp

    try:
        app = PriceMonitorApp()
        app.run()
    except Exception:
        logger.critical("Fatal error during dashboard run", exc_info=True)
        raise
    finally:
        logger.info("price_monitor dashboard shutting down")


def _dispatch(args: argparse.Namespace) -> int:
    """Run one CLI command and return its exit code."""
    from src.cli import runner

    if args.command == "run":
        return asyncio.run(
            runner.run_check(args.urls, args.concurrent, args.workers)
        )
    if args.command == "add":
        return runner.run_add(args.url, args.label, args.site)
    if args.command == "remove":
        return runner.run_remove(args.url)
    if args.command == "list":
        return runner.run_list()
    if args.command == "history":
        return runner.run_history(args.url, args.chart)
    if args.command == "alerts":
        return runner.run_alerts(args.threshold, args.hours, args.drops_only)
    if args.command == "summary":
        return runner.run_summary()
    if args.command == "export":
        return runner.run_export(args.output_format, args.history)
    if args.command == "log":
        return runner.run_log(args.limit)
    if args.command == "chart":
        return runner.run_chart(args.urls)
    raise ValueError(f"Unknown command: {args.command}")


def main() -> None:
    """Route to the dashboard (no command) or a headless command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(
        verbose=args.verbose, command=args.command or "dashboard",
    )
    logger.info("price_monitor starting, log file: %s", log_file)

    if args.command is None:
        _run_dashboard()
    else:
        sys.exit(_dispatch(args))


if __name__ == "__main__":
    main()
