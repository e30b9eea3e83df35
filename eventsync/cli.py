#!/usr/bin/env python3
"""Command-line interface for eventsync.

Commands:
  - eventsync scrape   : Run one scrape cycle across every configured backend
  - eventsync cleanup  : Delete events older than the retention window
  - eventsync plan     : Show configured backends and upcoming job runs
  - eventsync serve    : Run the HTTP API

Typical usage:
  eventsync scrape
  eventsync cleanup --days 5
  eventsync plan -n 3
  eventsync serve --port 8080
"""

from __future__ import annotations

import argparse
import json
import sys
import time


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="eventsync", description="eventsync CLI")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    sub = p.add_subparsers(dest="cmd")

    # scrape
    sub.add_parser("scrape", help="Run one scrape cycle")

    # cleanup
    pc = sub.add_parser("cleanup", help="Delete events older than the retention window")
    pc.add_argument("--days", type=int, default=None, help="Override RETENTION_DAYS")

    # plan
    pp = sub.add_parser("plan", help="Show backends and schedules without running")
    pp.add_argument("-n", type=int, default=3, help="Number of upcoming runs per job")

    # serve
    ps = sub.add_parser("serve", help="Run the HTTP API")
    ps.add_argument("--host", default="0.0.0.0", help="Bind address")
    ps.add_argument("--port", type=int, default=8080, help="Bind port")

    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from eventsync import __version__

        print(f"eventsync version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    from eventsync.configs.settings import get_settings
    from eventsync.monitoring.logging import LoggingOptions, setup_logging

    settings = get_settings()
    setup_logging(
        LoggingOptions(level=settings.LOG_LEVEL, json_logs=bool(args.json_logs or settings.JSON_LOGS))
    )

    if args.cmd == "plan":
        from eventsync.configs.config import Config
        from eventsync.scheduling.jobs import job_schedules
        from eventsync.scheduling.schedule import next_run_times

        print(f"{'BACKEND':<20} {'ENDPOINT':<40} {'ENABLED'}")
        print("-" * 70)
        for backend in Config(settings).load_backends():
            print(f"{backend.source_id:<20} {backend.endpoint:<40} {backend.enabled}")

        print()
        print(f"{'JOB':<20} {'SCHEDULE':<20} {'NEXT RUNS'}")
        print("-" * 70)
        now = time.time()
        for name, sched in job_schedules(settings).items():
            next_times = next_run_times(sched, now, n=args.n)
            next_str = ", ".join(t.strftime("%Y-%m-%d %H:%M") for t in next_times)
            print(f"{name:<20} {sched.summary():<20} {next_str}")
        return 0

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run("eventsync.main:app", host=args.host, port=args.port)
        return 0

    from eventsync.ingestion.persist import build_store

    store = build_store(settings)
    try:
        if args.cmd == "cleanup":
            from eventsync.ingestion.retention import purge_expired_events

            days = settings.RETENTION_DAYS if args.days is None else args.days
            deleted = purge_expired_events(store, days)
            print(f"Deleted {deleted} events older than {days} days")
            return 0

        if args.cmd == "scrape":
            from eventsync.ingestion.orchestrator import build_orchestrator

            orchestrator = build_orchestrator(settings, store)
            try:
                try:
                    cycle = orchestrator.run_cycle()
                except Exception as e:
                    print(f"Scrape cycle failed: {e}", file=sys.stderr)
                    return 1
            finally:
                orchestrator.close()

            print("-" * 40)
            print(cycle.summary())
            print(f"Cycle ID:    {cycle.cycle_id}")
            print(f"Per backend: {json.dumps(cycle.per_backend_counts())}")
            print("-" * 40)
            return 0
    finally:
        store.close()

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
