from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

DEFAULT_PART_COUNT = 2

# record families in the persisted document
PROGRESS = "progress"
ENTRIES = "entries"

# =========================================================
# Time helpers
# =========================================================
def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()

def new_round_id() -> str:
    # sortable by start time, unique even for two starts in the same second
    return f"{now_utc().strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"

# =========================================================
# Round state
# =========================================================
class Status(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RoundState:
    status: Status = Status.IDLE
    round_id: Optional[str] = None
    part_count: int = DEFAULT_PART_COUNT

    def __post_init__(self):
        if (self.round_id is None) != (self.status == Status.IDLE):
            raise ValueError(f"round_id must be set iff status != idle (got {self.status.value}, {self.round_id!r})")
        if self.part_count < 1:
            raise ValueError("part_count must be positive")

    @property
    def active(self) -> bool:
        return self.status == Status.ACTIVE

    def to_doc(self) -> Dict[str, Any]:
        return {"status": self.status.value, "round_id": self.round_id, "part_count": self.part_count}

    @classmethod
    def from_doc(cls, doc: Optional[Dict[str, Any]]) -> "RoundState":
        if not doc:
            return cls()
        status = Status(doc.get("status", Status.IDLE.value))
        round_id = doc.get("round_id")
        if status == Status.IDLE:
            round_id = None
        return cls(status=status, round_id=round_id, part_count=int(doc.get("part_count") or DEFAULT_PART_COUNT))

# =========================================================
# Participant records
# =========================================================
@dataclass
class Progress:
    round_id: str
    participant_id: int
    current_part: int = 0
    display_name: str = ""

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Progress":
        return cls(
            round_id=doc["round_id"],
            participant_id=doc["participant_id"],
            current_part=int(doc.get("current_part", 0)),
            display_name=doc.get("display_name", ""),
        )


@dataclass
class Entry:
    round_id: str
    participant_id: int
    part: int
    content: str
    submitted_at: str
    display_name: str = ""
    removed: bool = False
    message_refs: List[int] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Entry":
        return cls(
            round_id=doc["round_id"],
            participant_id=doc["participant_id"],
            part=int(doc["part"]),
            content=doc.get("content", ""),
            submitted_at=doc.get("submitted_at", ""),
            display_name=doc.get("display_name", ""),
            removed=bool(doc.get("removed", False)),
            message_refs=list(doc.get("message_refs") or []),
        )

    @property
    def key(self) -> Dict[str, Any]:
        return {"round_id": self.round_id, "participant_id": self.participant_id, "part": self.part}

# =========================================================
# Inbound direct message, as the intake sees it
# =========================================================
@dataclass
class ParticipantMessage:
    author_id: int
    display_name: str
    content: str
    reply: Callable[[str], Awaitable[Any]] = field(repr=False)
    is_bot: bool = False
    is_member: bool = True
    has_attachments: bool = False
