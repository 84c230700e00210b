"""Standalone Tarkov monitor - prints raid events as they happen.

Usage:
    python -m tarkovmonitor.standalone
    python -m tarkovmonitor.standalone --logs-path "D:/Battlestate Games/EFT/Logs"
    python -m tarkovmonitor.standalone --no-backfill --traces

Logs are written to ~/.tarkovmonitor/debug.log for bug reports.
"""

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import Any, Optional

from tarkovmonitor.events import (
    DebugMessage,
    ExceptionOccurred,
    FleaOfferExpired,
    FleaSold,
    GameEvent,
    GameStarted,
    GroupDisbanded,
    GroupMatchInvite,
    GroupReady,
    GroupUserLeave,
    MatchFound,
    MatchingAborted,
    MatchingStarted,
    RaidExited,
    RaidLoaded,
    TaskModified,
)
from tarkovmonitor.settings import SETTINGS_DIR, Settings, get_settings
from tarkovmonitor.watcher import GameWatcher

LOG_DIR = SETTINGS_DIR
LOG_FILE = LOG_DIR / "debug.log"

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Send DEBUG to the log file and INFO (or DEBUG) to the console."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    # Set up file handler with detailed format
    file_handler = logging.FileHandler(LOG_FILE, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    # Configure root logger directly (basicConfig is a no-op if already configured)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root_logger.addHandler(console_handler)


def format_event(event: GameEvent) -> Optional[str]:
    """One line describing an event, or None for events not worth showing."""
    if isinstance(event, GameStarted):
        return "Game started"
    if isinstance(event, MatchingStarted):
        return f"Matching started (map loaded in {event.map_load_time:.1f}s)"
    if isinstance(event, MatchFound):
        return f"Match found on {event.map} ({event.raid_id}) after {event.queue_time:.1f}s in queue"
    if isinstance(event, MatchingAborted):
        return f"Matching aborted after {event.queue_time:.1f}s"
    if isinstance(event, RaidLoaded):
        return f"Raid loaded: {event.map} as {event.raid_type.value}"
    if isinstance(event, RaidExited):
        return f"Raid exited: {event.map} ({event.raid_id or 'unknown id'})"
    if isinstance(event, GroupMatchInvite):
        return f"Group invite {event.invite_type.value.lower()}: {event.player.nickname}"
    if isinstance(event, GroupReady):
        return f"Group member ready: {event}"
    if isinstance(event, GroupUserLeave):
        return f"{event.nickname} left the group"
    if isinstance(event, GroupDisbanded):
        return "Group disbanded"
    if isinstance(event, TaskModified):
        return f"Task {event.task_id} {event.status.name.lower()}"
    if isinstance(event, FleaSold):
        received = ", ".join(f"{count}x {tpl}" for tpl, count in event.received_items.items())
        return f"{event.buyer} bought {event.sold_item_count}x {event.sold_item_id} for {received or 'nothing'}"
    if isinstance(event, FleaOfferExpired):
        return f"Flea offer expired: {event.item_count}x {event.item_id}"
    if isinstance(event, ExceptionOccurred):
        return f"Error: {event.error!r}"
    if isinstance(event, DebugMessage):
        return f"[debug] {event.text}"
    return None


def print_event(event: GameEvent) -> None:
    line = format_event(event)
    if line is None:
        return
    logger.info(f"{datetime.now():%H:%M:%S} {line}")


def settings_overrides(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    """Settings changed by command line flags."""
    overrides: dict[str, Any] = {}
    if args.logs_path:
        overrides["logs_path"] = args.logs_path
    if args.poll_interval is not None:
        overrides["poll_interval"] = args.poll_interval
    if args.backfill is not None:
        overrides["backfill"] = args.backfill
    if args.traces:
        log_types = settings.get("log_types")
        if "traces" not in log_types:
            overrides["log_types"] = log_types + ["traces"]
    return overrides


def main() -> None:
    """Main entry point for standalone monitor."""
    parser = argparse.ArgumentParser(
        description="Tarkov Monitor - raid, group, task and flea market events from game logs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tarkovmonitor.standalone
  python -m tarkovmonitor.standalone --logs-path "D:/Battlestate Games/EFT/Logs"
  python -m tarkovmonitor.standalone --no-backfill

Environment variables:
  TARKOV_LOGS_PATH   Game Logs directory (skips process based lookup)

Debug logs are written to ~/.tarkovmonitor/debug.log
        """
    )

    parser.add_argument(
        "--logs-path", "-l",
        help="Game Logs directory (default: next to the running game executable)"
    )

    parser.add_argument(
        "--poll-interval", "-p",
        type=float,
        help="Seconds between game process checks (default: 30)"
    )

    parser.add_argument(
        "--backfill",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Read the latest session's logs from the start when attaching (default: enabled)"
    )

    parser.add_argument(
        "--traces",
        action="store_true",
        help="Also monitor traces.log"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug output on the console"
    )

    parser.add_argument(
        "--show-log",
        action="store_true",
        help="Show the debug log file path and exit"
    )

    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Store the given options in ~/.tarkovmonitor/settings.json for next time"
    )

    args = parser.parse_args()

    if args.show_log:
        print(f"Debug log: {LOG_FILE}")
        if LOG_FILE.exists():
            print(f"Size: {LOG_FILE.stat().st_size:,} bytes")
            print(f"\nLast 20 lines:")
            with open(LOG_FILE) as f:
                lines = f.readlines()
                for line in lines[-20:]:
                    print(line, end='')
        return

    configure_logging(args.verbose)
    settings = get_settings()

    overrides = settings_overrides(args, settings)
    if args.save_settings and overrides:
        settings.update(overrides)
    log_types = overrides.get("log_types", settings.get("log_types"))

    resolve_log_directory = None
    if args.logs_path:
        resolve_log_directory = lambda process: args.logs_path

    logger.info("=" * 60)
    logger.info("TARKOV MONITOR STARTING")
    logger.info(f"Time: {datetime.now().isoformat()}")
    logger.info(f"Log file: {LOG_FILE}")
    logger.info("=" * 60)

    watcher = GameWatcher(
        on_event=print_event,
        settings=settings,
        resolve_log_directory=resolve_log_directory,
        poll_interval=args.poll_interval,
        backfill=args.backfill,
        log_types=log_types,
    )

    stopped = threading.Event()

    def handle_signal(signum, frame):
        stopped.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    with watcher:
        logger.info("Waiting for Escape from Tarkov... (Ctrl+C to quit)")
        while not stopped.wait(0.5):
            pass

    logger.info("Tarkov monitor stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
