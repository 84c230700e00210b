"""TarkovMonitor: Escape from Tarkov log monitoring and raid event detection."""

from typing import Optional

from tarkovmonitor.events import (
    DebugMessage,
    EventType,
    ExceptionOccurred,
    FleaOfferExpired,
    FleaSold,
    GameEvent,
    GameStarted,
    GroupDisbanded,
    GroupInviteType,
    GroupMatchInvite,
    GroupReady,
    GroupUserLeave,
    LogType,
    MatchFound,
    MatchingAborted,
    MatchingStarted,
    NewLogData,
    PlayerInfo,
    PlayerLoadout,
    RaidExited,
    RaidLoaded,
    RaidType,
    TaskFailed,
    TaskFinished,
    TaskModified,
    TaskStarted,
    TaskStatus,
)
from tarkovmonitor.parser import LogParser, LogRecord
from tarkovmonitor.patterns import LogFieldError, MessageKind, PatternMatch, match_record
from tarkovmonitor.raidstate import RaidInfo, RaidStateMachine
from tarkovmonitor.settings import Settings, get_settings
from tarkovmonitor.watcher import EventHandler, GameWatcher, LogMonitor

__version__ = "0.1.0"


def create_game_watcher(
    on_event: Optional[EventHandler] = None,
    **kwargs,
) -> GameWatcher:
    """Create a GameWatcher wired to a subscriber.

    Convenience factory for the common case of a single consumer that
    wants every event.

    Args:
        on_event: Called with each event on the watcher's worker thread.
        **kwargs: Passed through to GameWatcher (settings, poll_interval,
                 backfill, log_types, find_process, resolve_log_directory).

    Returns:
        The watcher. Start it (or use it as a context manager) to begin.

    Example:
        def show(event):
            if isinstance(event, RaidLoaded):
                print(f"Raid on {event.map} as {event.raid_type.value}")

        with create_game_watcher(show):
            time.sleep(3600)
    """
    return GameWatcher(on_event=on_event, **kwargs)


__all__ = [
    "__version__",
    "create_game_watcher",
    "GameWatcher",
    "LogMonitor",
    "EventHandler",
    "LogParser",
    "LogRecord",
    "match_record",
    "MessageKind",
    "PatternMatch",
    "LogFieldError",
    "RaidInfo",
    "RaidStateMachine",
    "Settings",
    "get_settings",
    "GameEvent",
    "EventType",
    "GameStarted",
    "RaidExited",
    "GroupMatchInvite",
    "GroupReady",
    "GroupDisbanded",
    "GroupUserLeave",
    "MatchingStarted",
    "MatchFound",
    "MatchingAborted",
    "RaidLoaded",
    "TaskModified",
    "TaskStarted",
    "TaskFailed",
    "TaskFinished",
    "FleaSold",
    "FleaOfferExpired",
    "NewLogData",
    "ExceptionOccurred",
    "DebugMessage",
    "LogType",
    "RaidType",
    "GroupInviteType",
    "TaskStatus",
    "PlayerInfo",
    "PlayerLoadout",
]
