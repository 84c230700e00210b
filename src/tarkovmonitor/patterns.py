"""Message catalog and field extraction for Tarkov log records.

Each catalog entry pairs one or more substring markers with an extractor
that pulls typed fields out of the message line and/or its payload.
Entries are evaluated independently, so a record is tested against every
entry even though the markers do not overlap in practice.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from tarkovmonitor.events import GroupInviteType, PlayerInfo, PlayerLoadout, TaskStatus
from tarkovmonitor.parser import LogRecord

logger = logging.getLogger(__name__)

# Chat message type for system messages with attached rewards
SYSTEM_REWARD_MESSAGE_TYPE = 4

FLEA_SOLD_TEMPLATE_ID = "5bdabfb886f7743e152e867e 0"
FLEA_EXPIRED_TEMPLATE_ID = "5bdabfe486f7743e1665df6e 0"

LOAD_TIME_PATTERN = re.compile(r'LocationLoaded:[0-9.]+ real:(?P<load_time>[0-9.]+)')
QUEUE_TIME_PATTERN = re.compile(r'MatchingCompleted:[0-9.]+ real:(?P<queue_time>[0-9.]+)')
LOCATION_PATTERN = re.compile(r'Location: (?P<map>[^,]+)')
RAID_ID_PATTERN = re.compile(r'shortId: (?P<raid_id>[A-Z0-9]{6})')
ONLINE_MARKER = "RaidMode: Online"


class LogFieldError(KeyError):
    """A field the event cannot be built without is missing."""


class MessageKind(Enum):
    USER_MATCH_OVER = "UserMatchOver"
    GROUP_INVITE = "GroupMatchInvite"
    GROUP_USER_LEAVE = "GroupMatchUserLeave"
    GROUP_DISBANDED = "GroupMatchWasRemoved"
    GROUP_RAID_READY = "GroupMatchRaidReady"
    LOCATION_LOADED = "LocationLoaded"
    MATCHING_COMPLETED = "MatchingCompleted"
    NETWORK_GAME_CREATE = "NetworkGameCreate"
    GAME_STARTING = "GameStarting"
    GAME_STARTED = "GameStarted"
    MATCHING_ABORTED = "MatchingAborted"
    CHAT_MESSAGE = "ChatMessageReceived"


@dataclass(frozen=True)
class PatternMatch:
    """A catalog hit: which kind of message, and what was extracted."""
    kind: MessageKind
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessagePattern:
    kind: MessageKind
    markers: tuple[str, ...]
    extract: Callable[[LogRecord], Optional[dict[str, Any]]]

    def matches(self, message: str) -> bool:
        return any(marker in message for marker in self.markers)


def get_path(payload: Any, path: str, default: Any = None, required: bool = False) -> Any:
    """Look up a dotted field path in a JSON payload.

    Args:
        payload: Parsed JSON document.
        path: Dotted path such as ``"message.systemData.soldItem"``.
        default: Value returned when the path is missing.
        required: Raise LogFieldError instead of returning default.
    """
    node = payload
    for key in path.split('.'):
        if isinstance(node, dict) and key in node and node[key] is not None:
            node = node[key]
            continue
        if isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
            continue
        if required:
            raise LogFieldError(path)
        return default
    return node


def _search_float(pattern: re.Pattern, message: str, name: str) -> float:
    match = pattern.search(message)
    if not match:
        raise LogFieldError(name)
    try:
        return float(match.group(name))
    except ValueError:
        raise LogFieldError(name) from None


def _stack_count(item: dict) -> int:
    return int(get_path(item, "upd.StackObjectsCount", 1))


def _player_info(node: Any, path: str) -> PlayerInfo:
    info = get_path(node, path, required=True)
    try:
        return PlayerInfo.from_node(info)
    except (KeyError, TypeError):
        raise LogFieldError(f"{path}.Nickname") from None


def _extract_match_over(record: LogRecord) -> dict[str, Any]:
    return {
        "map": str(get_path(record.payload, "location", required=True)),
        "raid_id": str(get_path(record.payload, "shortId", "")),
    }


def _extract_group_invite(record: LogRecord) -> dict[str, Any]:
    # Accept: someone you invited accepted. Send: you received an invite.
    payload_type = get_path(record.payload, "type")
    if payload_type is not None:
        accepted = payload_type == "groupMatchInviteAccept"
    else:
        accepted = "GroupMatchInviteAccept" in record.message
    return {
        "player": _player_info(record.payload, "Info"),
        "invite_type": GroupInviteType.ACCEPTED if accepted else GroupInviteType.SENT,
    }


def _extract_group_user_leave(record: LogRecord) -> dict[str, Any]:
    return {"nickname": str(get_path(record.payload, "Nickname", required=True))}


def _extract_group_raid_ready(record: LogRecord) -> dict[str, Any]:
    representation = get_path(record.payload, "extendedProfile.PlayerVisualRepresentation", required=True)
    try:
        loadout = PlayerLoadout.from_node(representation)
    except (KeyError, TypeError):
        raise LogFieldError("extendedProfile.PlayerVisualRepresentation.Info") from None
    return {
        "player": _player_info(record.payload, "extendedProfile.Info"),
        "loadout": loadout,
    }


def _extract_nothing(record: LogRecord) -> dict[str, Any]:
    return {}


def _extract_location_loaded(record: LogRecord) -> dict[str, Any]:
    return {"map_load_time": _search_float(LOAD_TIME_PATTERN, record.message, "load_time")}


def _extract_matching_completed(record: LogRecord) -> dict[str, Any]:
    return {"queue_time": _search_float(QUEUE_TIME_PATTERN, record.message, "queue_time")}


def _extract_network_game_create(record: LogRecord) -> dict[str, Any]:
    location = LOCATION_PATTERN.search(record.message)
    raid_id = RAID_ID_PATTERN.search(record.message)
    return {
        "map": location.group("map") if location else "",
        "online": ONLINE_MARKER in record.message,
        "raid_id": raid_id.group("raid_id") if raid_id else "",
    }


def _extract_chat_message(record: LogRecord) -> Optional[dict[str, Any]]:
    message = get_path(record.payload, "message")
    if not isinstance(message, dict):
        logger.debug("Chat notification without a message body")
        return None
    try:
        message_type = int(message["type"])
    except (KeyError, TypeError, ValueError):
        logger.debug("Chat notification without a usable message type")
        return None
    template_id = message.get("templateId")
    return {
        "message_type": message_type,
        "template_id": str(template_id) if template_id is not None else None,
        "message": message,
    }


CATALOG: tuple[MessagePattern, ...] = (
    MessagePattern(
        MessageKind.USER_MATCH_OVER,
        ("Got notification | UserMatchOver",),
        _extract_match_over,
    ),
    MessagePattern(
        MessageKind.GROUP_INVITE,
        ("Got notification | GroupMatchInviteAccept", "Got notification | GroupMatchInviteSend"),
        _extract_group_invite,
    ),
    MessagePattern(
        MessageKind.GROUP_USER_LEAVE,
        ("Got notification | GroupMatchUserLeave",),
        _extract_group_user_leave,
    ),
    MessagePattern(
        MessageKind.GROUP_DISBANDED,
        ("Got notification | GroupMatchWasRemoved",),
        _extract_nothing,
    ),
    MessagePattern(
        MessageKind.GROUP_RAID_READY,
        ("Got notification | GroupMatchRaidReady",),
        _extract_group_raid_ready,
    ),
    MessagePattern(
        MessageKind.LOCATION_LOADED,
        ("application|LocationLoaded",),
        _extract_location_loaded,
    ),
    MessagePattern(
        MessageKind.MATCHING_COMPLETED,
        ("application|MatchingCompleted",),
        _extract_matching_completed,
    ),
    MessagePattern(
        MessageKind.NETWORK_GAME_CREATE,
        ("application|TRACE-NetworkGameCreate profileStatus",),
        _extract_network_game_create,
    ),
    MessagePattern(
        MessageKind.GAME_STARTING,
        ("application|GameStarting",),
        _extract_nothing,
    ),
    MessagePattern(
        MessageKind.GAME_STARTED,
        ("application|GameStarted",),
        _extract_nothing,
    ),
    MessagePattern(
        MessageKind.MATCHING_ABORTED,
        ("application|Network game matching aborted", "application|Network game matching cancelled"),
        _extract_nothing,
    ),
    MessagePattern(
        MessageKind.CHAT_MESSAGE,
        ("Got notification | ChatMessageReceived",),
        _extract_chat_message,
    ),
)


def match_record(record: LogRecord) -> list[PatternMatch]:
    """Classify a record against the catalog.

    Returns every matching entry in catalog order. An extractor returning
    None turns its entry into a non-match; LogFieldError and other
    extraction errors propagate to the caller.
    """
    matches = []
    for pattern in CATALOG:
        if not pattern.matches(record.message):
            continue
        fields = pattern.extract(record)
        if fields is None:
            continue
        matches.append(PatternMatch(pattern.kind, fields))
    return matches


def decode_flea_sold(message: dict) -> dict[str, Any]:
    """Fields of a flea market sale from a chat message body."""
    received: dict[str, int] = {}
    if get_path(message, "hasRewards", True) is not False:
        for item in get_path(message, "items.data", []):
            if not isinstance(item, dict) or "_tpl" not in item:
                continue
            template = str(item["_tpl"])
            received[template] = received.get(template, 0) + _stack_count(item)

    return {
        "buyer": str(get_path(message, "systemData.buyerNickname", "")),
        "sold_item_id": str(get_path(message, "systemData.soldItem", required=True)),
        "sold_item_count": int(get_path(message, "systemData.itemCount", 1)),
        "received_items": received,
    }


def decode_flea_expired(message: dict) -> dict[str, Any]:
    """Fields of an expired flea offer; the returned item is the first one."""
    item = get_path(message, "items.data.0", required=True)
    return {
        "item_id": str(get_path(item, "_tpl", required=True)),
        "item_count": _stack_count(item),
    }


def decode_task_status(message_type: int) -> Optional[TaskStatus]:
    try:
        return TaskStatus(message_type)
    except ValueError:
        return None


def task_id_from_template(template_id: str) -> str:
    """Quest id is the first token of the message template id."""
    return template_id.split(' ')[0]
