#!/usr/bin/env python3
"""jobtrack - log job applications from your browser to a spreadsheet sink.

Usage:
    python main.py                          # Open the browser and track (default)
    python main.py --status                 # Show queue, today's count, recent errors
    python main.py --flush                  # Retry every queued record now
    python main.py --sweep                  # Drop expired dedupe keys
    python main.py --check-url URL          # Explain how a URL would be handled
    python main.py --test-connection        # GET the sink with ?test=1
    python main.py --sync-settings          # Push pause state + start date to the sink
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from jobtrack.browser import BrowserWatcher
from jobtrack.classifier import POLICIES, get_policy
from jobtrack.config_loader import Config, RuntimeSettingsFile, load_config
from jobtrack.delivery import DeliveryQueue
from jobtrack.errors import ConfigError, DeliveryError, SinkNotConfiguredError, TargetParseError
from jobtrack.extractor import extract
from jobtrack.keys import derive_key, parse_target
from jobtrack.orchestrator import EventOrchestrator
from jobtrack.sink import SinkClient
from jobtrack.state import StateStore
from jobtrack.status import StatusBoard
from jobtrack.tracker import ResumeUploadTracker, SeenKeyTracker
from jobtrack.utils import setup_logging

logger = logging.getLogger("jobtrack")


@dataclass
class Pipeline:
    orchestrator: EventOrchestrator
    queue: DeliveryQueue
    seen: SeenKeyTracker
    status: StatusBoard
    sink: SinkClient
    settings: RuntimeSettingsFile


def build_pipeline(config: Config, config_path: Path) -> Pipeline:
    """Wire the stores, queue, and orchestrator from config."""
    settings = RuntimeSettingsFile(config_path)
    store = StateStore(config.state_path)
    status = StatusBoard(store)
    sink = SinkClient(timeout=config.sink_timeout_seconds)
    seen = SeenKeyTracker(store, window=timedelta(days=config.dedupe_window_days))
    queue = DeliveryQueue(
        store,
        sink,
        status,
        sink_url=lambda: settings().sink_url,
        max_attempts=config.retry.max_attempts,
        backoff_base_seconds=config.retry.backoff_base_seconds,
        backoff_max_seconds=config.retry.backoff_max_seconds,
    )
    orchestrator = EventOrchestrator(
        policy=get_policy(config.policy),
        seen=seen,
        resumes=ResumeUploadTracker(store),
        queue=queue,
        sink=sink,
        status=status,
        settings=settings,
        debounce_seconds=config.debounce_seconds,
    )
    return Pipeline(orchestrator, queue, seen, status, sink, settings)


async def run_watch(config: Config, pipeline: Pipeline) -> None:
    """Open the browser and track until the window is closed."""
    browser = BrowserWatcher(
        pipeline.orchestrator,
        user_data_dir=config.browser_user_data_dir,
        headless=config.browser_headless,
    )
    maintenance = None
    try:
        # Deliver anything left over from the last run
        await pipeline.orchestrator.maintain()

        await browser.launch(start_url=config.browser_start_url)
        maintenance = asyncio.create_task(
            pipeline.orchestrator.run_maintenance(config.maintenance_interval_minutes * 60)
        )
        logger.info(
            "Tracking with the %s policy. Close the browser window to stop.", config.policy
        )
        await browser.wait_until_closed()
    finally:
        if maintenance:
            maintenance.cancel()
            try:
                await maintenance
            except asyncio.CancelledError:
                pass
        await browser.close()


async def run_status(pipeline: Pipeline) -> None:
    snap = await pipeline.status.snapshot()
    settings = pipeline.settings()

    print(f"\n{'=' * 40}")
    print("  Tracker Status")
    print(f"{'=' * 40}")
    print(f"  Sink:        {'configured' if settings.sink_url else 'NOT CONFIGURED'}")
    print(f"  Paused:      {'yes' if settings.paused else 'no'}")
    if snap.needs_configuration:
        print("  Attention:   records arrived while the sink URL was missing")
    print(f"  Today:       {snap.today_count}")
    print(f"  Queued:      {snap.queue_length}")
    if snap.last_job:
        print(f"  Last job:    {snap.last_job.get('role_title', '')} at {snap.last_job.get('company', '')}")
    if snap.last_resume:
        print(f"  Last resume: {snap.last_resume.get('file_name', '')}")
        if snap.last_resume.get("drive_url"):
            print(f"               {snap.last_resume['drive_url']}")
    print(f"{'=' * 40}")

    if snap.error_log:
        print("  Recent errors:")
        for entry in snap.error_log[-10:]:
            print(f"    {entry.get('ts', '')}  {entry.get('message', '')}")
        print()


def require_sink_url(pipeline: Pipeline) -> str:
    url = pipeline.settings().sink_url
    if not url:
        raise SinkNotConfiguredError("Sink URL is not configured. Set sink.url in config.yaml first.")
    return url


async def run_flush(pipeline: Pipeline) -> None:
    require_sink_url(pipeline)
    result = await pipeline.queue.flush(force=True)
    print(
        f"Delivered {result.delivered}, kept {result.retained} for retry, dropped {result.dropped}."
    )


async def run_sweep(pipeline: Pipeline) -> None:
    removed = await pipeline.seen.sweep_expired()
    print(f"Removed {removed} expired keys ({await pipeline.seen.count()} still active).")


def run_check_url(url: str, title: str) -> None:
    """Print how each policy and the extractor treat a URL. Touches no state."""
    try:
        parsed = parse_target(url)
        print(f"  Rule:       {parsed.rule.name} (host {parsed.host})")
    except TargetParseError as e:
        print(f"  Parse:      FAILED ({e.reason})")

    for name in POLICIES:
        print(f"  {name + ':':<12}{get_policy(name).classify(url).value}")

    attrs = extract(url, title)
    print(f"  Key:        {derive_key(url)}")
    print(f"  Company:    {attrs.company}")
    print(f"  Role:       {attrs.role_title}")
    print(f"  Source:     {attrs.source_label}")


async def run_test_connection(pipeline: Pipeline) -> None:
    url = require_sink_url(pipeline)
    try:
        code = await pipeline.sink.test_connection(url)
    except DeliveryError as e:
        print(f"Connection failed: {e}")
        return
    print(f"Connection successful (HTTP {code}).")


async def run_sync_settings(config: Config, pipeline: Pipeline) -> None:
    url = require_sink_url(pipeline)
    settings = pipeline.settings()
    try:
        await pipeline.sink.sync_settings(
            url,
            gmail_cutoff_date=config.job_search_start_date,
            tracking_active=not settings.paused,
        )
    except DeliveryError as e:
        print(f"Failed to sync settings to the sink: {e}")
        return
    print("Settings synced.")


async def run_main(args: argparse.Namespace, config: Config) -> int:
    pipeline = build_pipeline(config, Path(args.config))
    try:
        if args.status:
            await run_status(pipeline)
        elif args.flush:
            await run_flush(pipeline)
        elif args.sweep:
            await run_sweep(pipeline)
        elif args.test_connection:
            await run_test_connection(pipeline)
        elif args.sync_settings:
            await run_sync_settings(config, pipeline)
        else:
            await run_watch(config, pipeline)
    except SinkNotConfiguredError as e:
        logger.error("%s", e)
        return 1
    finally:
        await pipeline.sink.close()
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="jobtrack - log job applications from your browser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="First run: cp config.example.yaml config.yaml, set sink.url, then python main.py",
    )
    parser.add_argument("--status", action="store_true", help="Show tracker status and exit.")
    parser.add_argument("--flush", action="store_true", help="Retry all queued records now.")
    parser.add_argument("--sweep", action="store_true", help="Remove expired dedupe keys.")
    parser.add_argument(
        "--check-url",
        metavar="URL",
        help="Show classification, key, and extracted fields for a URL.",
    )
    parser.add_argument("--title", default="", help="Page title to use with --check-url.")
    parser.add_argument(
        "--test-connection", action="store_true", help="Check that the sink URL responds."
    )
    parser.add_argument(
        "--sync-settings",
        action="store_true",
        help="Send pause state and job search start date to the sink.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to config file (default: config.yaml).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main():
    args = parse_args()

    if args.check_url:
        run_check_url(args.check_url, args.title)
        return

    try:
        config = load_config(Path(args.config))
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(verbose=args.verbose, log_dir=config.log_dir)
    print(f"  jobtrack  {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

    sys.exit(asyncio.run(run_main(args, config)))


if __name__ == "__main__":
    main()
