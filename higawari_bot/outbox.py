from __future__ import annotations

from typing import List, Protocol

DELIMITER = "=======================\n"
MESSAGE_LIMIT = 2000


class Outbox(Protocol):
    """Outbound side of the chat platform."""

    async def send(self, channel_id: int, text: str) -> List[int]:
        """Post text to a channel, returning the ids of every message it took."""

    async def set_presence(self, text: str) -> None:
        ...


def split_message(text: str, limit: int = MESSAGE_LIMIT) -> List[str]:
    """Split text into chunks under the platform limit, preferring line breaks.

    A line break in the first half of the window is not used, so a short
    leading line (such as the delimiter) never ends up alone in a chunk.
    """
    chunks = []
    rest = text
    while len(rest) > limit:
        cut = rest.rfind("\n", 0, limit)
        if cut < limit // 2:
            cut = limit
        chunks.append(rest[:cut])
        rest = rest[cut:]
        if rest.startswith("\n"):
            rest = rest[1:]
    chunks.append(rest)
    return chunks
