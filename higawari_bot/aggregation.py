from __future__ import annotations

import logging
import random
from typing import Any, Awaitable, Callable, List, Optional

from .i18n import TextResolver
from .models import ENTRIES, Entry, RoundState
from .outbox import DELIMITER, Outbox
from .store import RecordStore

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Read paths over stored entries: moderator review, public release, status."""

    def __init__(
        self,
        store: RecordStore,
        outbox: Outbox,
        texts: TextResolver,
        moderation_channel_id: int,
        challenge_channel_id: int,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.outbox = outbox
        self.texts = texts
        self.moderation_channel_id = moderation_channel_id
        self.challenge_channel_id = challenge_channel_id
        self.rng = rng or random.Random()

    def entries_for(self, round_id: str, part: int, include_removed: bool = True) -> List[Entry]:
        # stored order is arrival order; a re-submission keeps its slot
        entries = [Entry.from_doc(d) for d in self.store.find(ENTRIES, round_id=round_id, part=part)]
        if include_removed:
            return entries
        return [e for e in entries if not e.removed]

    # ---------- moderator review ----------
    async def review(self, state: RoundState, record_refs: bool = False):
        """Dump every part, unshuffled, into the moderation channel.

        With ``record_refs`` the ids of the messages showing each entry (more
        than one when a long entry is split) are written back onto it, so that
        deleting any of them later marks the entry removed.
        """
        ch = self.moderation_channel_id
        for part in range(1, state.part_count + 1):
            await self.outbox.send(ch, self.texts("answer_title", num=part))

            entries = self.entries_for(state.round_id, part)
            if not entries:
                await self.outbox.send(ch, self.texts("no_submissions"))
                continue

            for entry in entries:
                refs = await self.outbox.send(ch, DELIMITER + entry.content)
                if record_refs and refs:
                    await self.store.update_one(ENTRIES, entry.key, {"message_refs": list(refs)})

    def entry_for_message(self, message_ref: int) -> Optional[Entry]:
        for doc in self.store.find(ENTRIES):
            if message_ref in (doc.get("message_refs") or []):
                return Entry.from_doc(doc)
        return None

    async def mark_removed(self, message_ref: int) -> bool:
        entry = self.entry_for_message(message_ref)
        if entry is None:
            return False
        try:
            found = await self.store.update_one(ENTRIES, entry.key, {"removed": True})
        except Exception:
            logger.exception("Failed to mark entry for message %s removed", message_ref)
            return False
        if found:
            logger.info("Entry for message %s removed from publication", message_ref)
        return found

    # ---------- public release ----------
    async def publish(self, state: RoundState):
        ch = self.challenge_channel_id
        await self.outbox.send(ch, self.texts("results"))

        for part in range(1, state.part_count + 1):
            entries = self.entries_for(state.round_id, part, include_removed=False)
            await self.outbox.send(ch, self.texts("answer_title", num=part))

            if not entries:
                await self.outbox.send(ch, DELIMITER + self.texts("no_submissions"))
                continue

            shuffled = list(entries)
            self.rng.shuffle(shuffled)
            for i, entry in enumerate(shuffled, start=1):
                await self.outbox.send(ch, f"{DELIMITER}{i}. {entry.content}")

    # ---------- participant echo ----------
    async def echo_entries(
        self,
        state: RoundState,
        participant_id: int,
        reply: Callable[[str], Awaitable[Any]],
    ):
        await reply(DELIMITER + self.texts("reply_title"))

        docs = self.store.find(ENTRIES, round_id=state.round_id, participant_id=participant_id)
        entries = sorted((Entry.from_doc(d) for d in docs), key=lambda e: e.part)
        for entry in entries:
            if state.part_count > 1:
                await reply(DELIMITER + self.texts("reply_title_multipart", part=entry.part))
            await reply(DELIMITER + entry.content)

    # ---------- status indicator ----------
    def submitter_count(self, state: RoundState) -> int:
        # counted over entries, so a participant who only skipped is not included
        return len(self.store.distinct(ENTRIES, "participant_id", round_id=state.round_id))

    def status_text(self, state: RoundState) -> str:
        if not state.active:
            return self.texts("status_idle")
        return self.texts("status_submissions", count=self.submitter_count(state))

    async def refresh_status(self, state: RoundState):
        try:
            await self.outbox.set_presence(self.status_text(state))
        except Exception:
            logger.exception("Failed to update status indicator")
