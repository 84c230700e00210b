"""Domain events derived from Escape from Tarkov log files.

Every event is an immutable value record. Consumers receive these over a
single ordered stream and filter by type (or by the ``kind`` tag) instead
of registering one callback per event.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union


class LogType(Enum):
    """Log file roles written into each session folder."""
    APPLICATION = "application"
    NOTIFICATIONS = "notifications"
    TRACES = "traces"


class RaidType(Enum):
    """How the player entered a raid. Only PMC is ever signalled directly."""
    UNKNOWN = "Unknown"
    PMC = "PMC"
    SCAV = "Scav"


class GroupInviteType(Enum):
    ACCEPTED = "Accepted"
    SENT = "Sent"


class TaskStatus(Enum):
    """Chat message types that carry quest progress."""
    STARTED = 10
    FAILED = 11
    FINISHED = 12


@dataclass(frozen=True)
class PlayerInfo:
    """Identity block (``Info``) of another player."""
    nickname: str
    side: str = ""
    level: int = 0
    member_category: int = 0

    @classmethod
    def from_node(cls, node: dict) -> "PlayerInfo":
        return cls(
            nickname=str(node["Nickname"]),
            side=str(node.get("Side", "")),
            level=int(node.get("Level", 0) or 0),
            member_category=int(node.get("MemberCategory", 0) or 0),
        )


@dataclass(frozen=True)
class PlayerLoadout:
    """Visual representation of a group member as they ready up.

    Attributes:
        info: Identity shown on the loadout (side and level at ready time).
        equipment_id: Id of the equipment container, empty if not present.
        items: Template ids of every equipped item, in payload order.
    """
    info: PlayerInfo
    equipment_id: str = ""
    items: tuple[str, ...] = ()

    @classmethod
    def from_node(cls, node: dict) -> "PlayerLoadout":
        equipment = node.get("Equipment") or {}
        items = tuple(
            str(item["_tpl"])
            for item in equipment.get("Items") or []
            if isinstance(item, dict) and "_tpl" in item
        )
        return cls(
            info=PlayerInfo.from_node(node["Info"]),
            equipment_id=str(equipment.get("Id", "")),
            items=items,
        )


@dataclass(frozen=True)
class GameEvent:
    """Base for every event on the stream."""
    kind: ClassVar[str] = "GameEvent"


@dataclass(frozen=True)
class GameStarted(GameEvent):
    kind: ClassVar[str] = "GameStarted"


@dataclass(frozen=True)
class RaidExited(GameEvent):
    kind: ClassVar[str] = "RaidExited"
    map: str
    raid_id: str = ""


@dataclass(frozen=True)
class GroupMatchInvite(GameEvent):
    kind: ClassVar[str] = "GroupMatchInvite"
    player: PlayerInfo
    invite_type: GroupInviteType


@dataclass(frozen=True)
class GroupReady(GameEvent):
    kind: ClassVar[str] = "GroupReady"
    player: PlayerInfo
    loadout: PlayerLoadout

    def __str__(self) -> str:
        return f"{self.player.nickname} ({self.loadout.info.side}, {self.loadout.info.level})"


@dataclass(frozen=True)
class GroupDisbanded(GameEvent):
    kind: ClassVar[str] = "GroupDisbanded"


@dataclass(frozen=True)
class GroupUserLeave(GameEvent):
    kind: ClassVar[str] = "GroupUserLeave"
    nickname: str


@dataclass(frozen=True)
class MatchingStarted(GameEvent):
    kind: ClassVar[str] = "MatchingStarted"
    map_load_time: float


@dataclass(frozen=True)
class MatchFound(GameEvent):
    kind: ClassVar[str] = "MatchFound"
    map: str
    raid_id: str
    queue_time: float
    map_load_time: float


@dataclass(frozen=True)
class MatchingAborted(GameEvent):
    kind: ClassVar[str] = "MatchingAborted"
    map_load_time: float
    queue_time: float


@dataclass(frozen=True)
class RaidLoaded(GameEvent):
    kind: ClassVar[str] = "RaidLoaded"
    map: str
    raid_id: str
    queue_time: float
    map_load_time: float
    raid_type: RaidType


@dataclass(frozen=True)
class TaskModified(GameEvent):
    kind: ClassVar[str] = "TaskModified"
    task_id: str
    status: TaskStatus


@dataclass(frozen=True)
class TaskStarted(GameEvent):
    kind: ClassVar[str] = "TaskStarted"
    task_id: str


@dataclass(frozen=True)
class TaskFailed(GameEvent):
    kind: ClassVar[str] = "TaskFailed"
    task_id: str


@dataclass(frozen=True)
class TaskFinished(GameEvent):
    kind: ClassVar[str] = "TaskFinished"
    task_id: str


@dataclass(frozen=True)
class FleaSold(GameEvent):
    kind: ClassVar[str] = "FleaSold"
    buyer: str
    sold_item_id: str
    sold_item_count: int
    received_items: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class FleaOfferExpired(GameEvent):
    kind: ClassVar[str] = "FleaOfferExpired"
    item_id: str
    item_count: int


@dataclass(frozen=True)
class NewLogData(GameEvent):
    """Raw chunk appended to a monitored log, published before parsing."""
    kind: ClassVar[str] = "NewLogData"
    log_type: LogType
    data: str


@dataclass(frozen=True)
class ExceptionOccurred(GameEvent):
    kind: ClassVar[str] = "ExceptionOccurred"
    error: BaseException


@dataclass(frozen=True)
class DebugMessage(GameEvent):
    kind: ClassVar[str] = "DebugMessage"
    text: str


TASK_EVENTS: dict[TaskStatus, Any] = {
    TaskStatus.STARTED: TaskStarted,
    TaskStatus.FAILED: TaskFailed,
    TaskStatus.FINISHED: TaskFinished,
}

EventType = Union[
    GameStarted, RaidExited, GroupMatchInvite, GroupReady, GroupDisbanded,
    GroupUserLeave, MatchingStarted, MatchFound, MatchingAborted, RaidLoaded,
    TaskModified, TaskStarted, TaskFailed, TaskFinished, FleaSold,
    FleaOfferExpired, NewLogData, ExceptionOccurred, DebugMessage,
]
