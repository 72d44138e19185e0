#!/usr/bin/env python3
"""
Autonomous forecasting loop -- command line entry point.

  scan     one scan, print the ranked opportunities (no commitments)
  cycle    one synchronous scan-then-decide pass
  status   ledger counts and engine state
  arb      cross-venue spreads in the current listings
  run      daemon: scanner + resolution watcher until SIGINT/SIGTERM

Usage:
  python run.py scan
  python run.py --db forecasts.db cycle
  python run.py --log-level DEBUG --json-log run.ndjson run
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from pydantic import ValidationError

from config import Config, load_config
from ledger.store import PersistenceError
from monitor.display import (
    print_arbitrage,
    print_cycle_header,
    print_scan_result,
    print_startup,
    print_status,
)
from monitor.logger import setup_logging
from pipeline.loop import ControlLoop

logger = logging.getLogger("run")

_BANNER = """
  ┌─────────────────────────────────────┐
  │   Autonomous Forecasting Loop       │
  └─────────────────────────────────────┘
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Autonomous prediction-market forecasting loop")
    parser.add_argument("--log-level", type=str, default=None, help="Console log level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    parser.add_argument("--db", type=str, default=None, help="SQLite ledger path (default: DB_PATH or forecasts.db)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("scan", help="Run one scan and print the ranked opportunities")
    sub.add_parser("cycle", help="Run one scan-then-decide pass")
    sub.add_parser("status", help="Print ledger and engine status")
    arb = sub.add_parser("arb", help="Report cross-venue spreads")
    arb.add_argument("--query", type=str, default="", help="Search query (default: hot markets)")
    arb.add_argument("--limit", type=int, default=0, help="Markets to fetch (default: scan batch size)")
    sub.add_parser("run", help="Run the scanner and resolution watcher until interrupted")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.db:
        overrides["db_path"] = args.db
    return load_config(**overrides)


def cmd_scan(loop: ControlLoop) -> int:
    print_cycle_header("Scan")
    result = loop.scan_once()
    print_scan_result(result)
    return 0 if result.ok else 1


def cmd_cycle(loop: ControlLoop) -> int:
    print_cycle_header("Cycle")
    report = loop.force_cycle()
    print_scan_result(loop.scanner.last_result)
    print_status(loop.get_status())
    return 0 if not report.error else 1


def cmd_status(loop: ControlLoop) -> int:
    loop.prepare()
    print_status(loop.get_status())
    return 0


def cmd_arb(loop: ControlLoop, args: argparse.Namespace) -> int:
    print_cycle_header("Arbitrage")
    print_arbitrage(loop.scan_arbitrage(args.query, args.limit or None))
    return 0


def cmd_run(loop: ControlLoop) -> int:
    stop_requested = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        stop_requested.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    loop.start()
    try:
        # Event.wait() with a timeout keeps the main thread responsive to signals
        while not stop_requested.wait(1.0):
            pass
    finally:
        loop.stop()
        print_status(loop.get_status())
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = build_config(args)
    except ValidationError as e:
        setup_logging("INFO", json_log_file=args.json_log)
        logger.error("Invalid configuration:\n%s", e)
        return 1

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip("\n"))
    logger.info("  Log file: %s", log_file_path)
    print_startup(cfg)

    try:
        loop = ControlLoop(cfg)
    except PersistenceError as e:
        logger.error("Cannot open ledger: %s", e)
        return 1

    try:
        if args.command == "scan":
            return cmd_scan(loop)
        if args.command == "cycle":
            return cmd_cycle(loop)
        if args.command == "status":
            return cmd_status(loop)
        if args.command == "arb":
            return cmd_arb(loop, args)
        return cmd_run(loop)
    finally:
        loop.close()


if __name__ == "__main__":
    sys.exit(main())
