from __future__ import annotations

import logging
from typing import Optional

from .aggregation import AggregationEngine
from .i18n import TextResolver
from .models import ENTRIES, PROGRESS, ParticipantMessage, Progress, RoundState, iso, now_utc
from .state_machine import ChallengeStateMachine, normalize
from .store import RecordStore

logger = logging.getLogger(__name__)

SUBMIT = "submit"
SKIP = "skip"


class SubmissionIntake:
    """Direct-message flow: `submit`, then one message (or `skip`) per part."""

    def __init__(
        self,
        store: RecordStore,
        machine: ChallengeStateMachine,
        engine: AggregationEngine,
        texts: TextResolver,
    ):
        self.store = store
        self.machine = machine
        self.engine = engine
        self.texts = texts

    def progress_for(self, state: RoundState, participant_id: int) -> Optional[Progress]:
        doc = self.store.find_one(PROGRESS, round_id=state.round_id, participant_id=participant_id)
        return Progress.from_doc(doc) if doc else None

    async def handle(self, msg: ParticipantMessage):
        if msg.is_bot or not msg.is_member:
            return

        if msg.has_attachments:
            await self._reply(msg, self.texts("reply_no_attachments"))
            return

        try:
            state = self.machine.state
            if not state.active:
                await msg.reply(self.texts("reply_no_challenge"))
                return

            progress = self.progress_for(state, msg.author_id)
            if progress is None or progress.current_part == 0:
                await self._entry_phase(state, msg)
            else:
                await self._content_phase(state, msg, progress)
        except Exception:
            logger.exception("Submission from %s failed", msg.author_id)
            await self._reply(msg, self.texts("reply_error"))

    async def _reply(self, msg: ParticipantMessage, text: str):
        try:
            await msg.reply(text)
        except Exception:
            logger.exception("Failed to reply to %s", msg.author_id)

    # ---------- phases ----------
    async def _entry_phase(self, state: RoundState, msg: ParticipantMessage):
        if normalize(msg.content) != SUBMIT:
            if state.part_count == 1:
                await msg.reply(self.texts("reply_help"))
            else:
                await msg.reply(self.texts("reply_help_multipart", parts=state.part_count))
            return

        await self.store.upsert(
            PROGRESS,
            {"round_id": state.round_id, "participant_id": msg.author_id},
            {"current_part": 1, "display_name": msg.display_name},
        )
        await self.engine.refresh_status(state)

        if state.part_count == 1:
            await msg.reply(self.texts("reply_answer"))
        else:
            await msg.reply(self.texts("reply_answer_multipart", part=1))

    async def _content_phase(self, state: RoundState, msg: ParticipantMessage, progress: Progress):
        part = progress.current_part
        is_last = part >= state.part_count
        skipped = normalize(msg.content) == SKIP

        if not skipped:
            await self.store.upsert(
                ENTRIES,
                {"round_id": state.round_id, "participant_id": msg.author_id, "part": part},
                {
                    "content": msg.content,
                    "submitted_at": iso(now_utc()),
                    "display_name": msg.display_name,
                    "removed": False,
                },
            )

        next_part = 0 if is_last else part + 1
        await self.store.upsert(
            PROGRESS,
            {"round_id": state.round_id, "participant_id": msg.author_id},
            {"current_part": next_part},
        )
        await self.engine.refresh_status(state)
        logger.debug("%s: part %d %s", msg.author_id, part, "skipped" if skipped else "stored")

        thanks = "" if skipped else self.texts("reply_thanks") + " "
        if is_last:
            await msg.reply(thanks + self.texts("reply_finish"))
            await self.engine.echo_entries(state, msg.author_id, msg.reply)
        else:
            await msg.reply(thanks + self.texts("reply_answer_multipart", part=next_part))
