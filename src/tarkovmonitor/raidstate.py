"""Raid session state machine.

Turns classified log records into one-shot domain events. The state is a
single RaidInfo value that is replaced, never mutated: field updates
produce a new version with dataclasses.replace() and raid boundaries
swap in a fresh RaidInfo().

Notes on the rules:

- MatchFound needs a queue time. Reconnecting to a raid in progress
  skips matching entirely, so queue_time stays 0 and nothing is raised.
- PMC raids announce themselves with GameStarting (the countdown). Scav
  raids skip the countdown, so a GameStarted with no PMC signal after
  time spent queueing is a Scav raid. Rejoining an online raid skips
  both matching and the countdown, so RaidLoaded is raised with the raid
  type left Unknown. Offline raids never raise RaidLoaded.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from tarkovmonitor.events import (
    TASK_EVENTS,
    ExceptionOccurred,
    FleaOfferExpired,
    FleaSold,
    GameEvent,
    GroupDisbanded,
    GroupMatchInvite,
    GroupReady,
    GroupUserLeave,
    MatchFound,
    MatchingAborted,
    MatchingStarted,
    RaidExited,
    RaidLoaded,
    RaidType,
    TaskModified,
)
from tarkovmonitor.parser import LogRecord
from tarkovmonitor.patterns import (
    FLEA_EXPIRED_TEMPLATE_ID,
    FLEA_SOLD_TEMPLATE_ID,
    SYSTEM_REWARD_MESSAGE_TYPE,
    MessageKind,
    PatternMatch,
    decode_flea_expired,
    decode_flea_sold,
    decode_task_status,
    match_record,
    task_id_from_template,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RaidInfo:
    """What is known so far about the raid being matched or loaded.

    Attributes:
        map: Location id, empty until the network game is created.
        raid_id: Six character short id of the raid.
        online: Whether the raid mode is online.
        map_load_time: Seconds spent loading the location.
        queue_time: Seconds spent matching; 0 means matching never ran.
        raid_type: PMC once the countdown starts, Scav by inference.
    """
    map: str = ""
    raid_id: str = ""
    online: bool = False
    map_load_time: float = 0.0
    queue_time: float = 0.0
    raid_type: RaidType = RaidType.UNKNOWN


class RaidStateMachine:
    """Applies records to RaidInfo in arrival order and emits events.

    Not thread safe: callers must feed records from a single thread.
    """

    def __init__(self) -> None:
        self._raid = RaidInfo()
        self._handlers: dict[MessageKind, Callable[[PatternMatch], list[GameEvent]]] = {
            MessageKind.USER_MATCH_OVER: self._on_match_over,
            MessageKind.GROUP_INVITE: self._on_group_invite,
            MessageKind.GROUP_USER_LEAVE: self._on_group_user_leave,
            MessageKind.GROUP_DISBANDED: self._on_group_disbanded,
            MessageKind.GROUP_RAID_READY: self._on_group_raid_ready,
            MessageKind.LOCATION_LOADED: self._on_location_loaded,
            MessageKind.MATCHING_COMPLETED: self._on_matching_completed,
            MessageKind.NETWORK_GAME_CREATE: self._on_network_game_create,
            MessageKind.GAME_STARTING: self._on_game_starting,
            MessageKind.GAME_STARTED: self._on_game_started,
            MessageKind.MATCHING_ABORTED: self._on_matching_aborted,
            MessageKind.CHAT_MESSAGE: self._on_chat_message,
        }

    @property
    def raid_info(self) -> RaidInfo:
        """Current raid state. Safe to hold on to; it is never mutated."""
        return self._raid

    def reset(self) -> None:
        """Forget the current raid (process attach or exit)."""
        self._raid = RaidInfo()

    def process_record(self, record: LogRecord) -> list[GameEvent]:
        """Classify a record and apply it.

        Never raises. An error while extracting fields or building events
        is returned as an ExceptionOccurred event after whatever events the
        record had already produced.
        """
        events: list[GameEvent] = []
        try:
            for match in match_record(record):
                events.extend(self.apply(match))
        except Exception as e:
            logger.exception(f"Error processing log record: {record.message[:200]}")
            events.append(ExceptionOccurred(e))
        return events

    def apply(self, match: PatternMatch) -> list[GameEvent]:
        """Apply one catalog match and return the events it raises."""
        handler = self._handlers.get(match.kind)
        if handler is None:
            return []
        events = handler(match)
        for event in events:
            logger.debug(f"Emitting event: {event.kind}")
        return events

    def _on_match_over(self, match: PatternMatch) -> list[GameEvent]:
        return [RaidExited(map=match.fields["map"], raid_id=match.fields["raid_id"])]

    def _on_group_invite(self, match: PatternMatch) -> list[GameEvent]:
        return [GroupMatchInvite(player=match.fields["player"], invite_type=match.fields["invite_type"])]

    def _on_group_user_leave(self, match: PatternMatch) -> list[GameEvent]:
        return [GroupUserLeave(nickname=match.fields["nickname"])]

    def _on_group_disbanded(self, match: PatternMatch) -> list[GameEvent]:
        return [GroupDisbanded()]

    def _on_group_raid_ready(self, match: PatternMatch) -> list[GameEvent]:
        return [GroupReady(player=match.fields["player"], loadout=match.fields["loadout"])]

    def _on_location_loaded(self, match: PatternMatch) -> list[GameEvent]:
        # Map is loaded and matching begins
        self._raid = RaidInfo(map_load_time=match.fields["map_load_time"])
        return [MatchingStarted(map_load_time=self._raid.map_load_time)]

    def _on_matching_completed(self, match: PatternMatch) -> list[GameEvent]:
        # Also logged when matching is cancelled; never logged on reconnect
        self._raid = replace(self._raid, queue_time=match.fields["queue_time"])
        return []

    def _on_network_game_create(self, match: PatternMatch) -> list[GameEvent]:
        self._raid = replace(
            self._raid,
            map=match.fields["map"],
            online=match.fields["online"],
            raid_id=match.fields["raid_id"],
        )
        if self._raid.online and self._raid.queue_time > 0:
            return [MatchFound(
                map=self._raid.map,
                raid_id=self._raid.raid_id,
                queue_time=self._raid.queue_time,
                map_load_time=self._raid.map_load_time,
            )]
        return []

    def _on_game_starting(self, match: PatternMatch) -> list[GameEvent]:
        # Countdown only happens for PMCs
        self._raid = replace(self._raid, raid_type=RaidType.PMC)
        if self._raid.online:
            return [self._raid_loaded()]
        return []

    def _on_game_started(self, match: PatternMatch) -> list[GameEvent]:
        events: list[GameEvent] = []
        if self._raid.raid_type == RaidType.UNKNOWN and self._raid.queue_time > 0:
            self._raid = replace(self._raid, raid_type=RaidType.SCAV)
        if self._raid.online and self._raid.raid_type != RaidType.PMC:
            events.append(self._raid_loaded())
        self._raid = RaidInfo()
        return events

    def _on_matching_aborted(self, match: PatternMatch) -> list[GameEvent]:
        event = MatchingAborted(
            map_load_time=self._raid.map_load_time,
            queue_time=self._raid.queue_time,
        )
        self._raid = RaidInfo()
        return [event]

    def _on_chat_message(self, match: PatternMatch) -> list[GameEvent]:
        message_type = match.fields["message_type"]
        template_id: Optional[str] = match.fields["template_id"]
        message: dict[str, Any] = match.fields["message"]

        if message_type == SYSTEM_REWARD_MESSAGE_TYPE:
            if template_id == FLEA_SOLD_TEMPLATE_ID:
                return [FleaSold(**decode_flea_sold(message))]
            if template_id == FLEA_EXPIRED_TEMPLATE_ID:
                return [FleaOfferExpired(**decode_flea_expired(message))]

        status = decode_task_status(message_type)
        if status is None or not template_id:
            return []

        task_id = task_id_from_template(template_id)
        return [
            TaskModified(task_id=task_id, status=status),
            TASK_EVENTS[status](task_id=task_id),
        ]

    def _raid_loaded(self) -> RaidLoaded:
        return RaidLoaded(
            map=self._raid.map,
            raid_id=self._raid.raid_id,
            queue_time=self._raid.queue_time,
            map_load_time=self._raid.map_load_time,
            raid_type=self._raid.raid_type,
        )
