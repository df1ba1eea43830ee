from __future__ import annotations

import logging
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .aggregation import AggregationEngine
from .i18n import TextResolver
from .models import RoundState, Status, new_round_id
from .outbox import Outbox
from .store import RecordStore

logger = logging.getLogger(__name__)

FORCE_RESET_PHRASE = "force reset, please. i understand the consequences"


class ModCommand(str, Enum):
    HELP = "help"
    START = "start"
    STOP = "stop"
    CURRENT = "current"
    RESET = "reset"
    FORCE_RESET = "force-reset"
    PUBLISH = "publish"


_BY_NAME = {c.value: c for c in ModCommand if c is not ModCommand.FORCE_RESET}


def normalize(text: str) -> str:
    return " ".join((text or "").strip().lower().split())


def parse_command(text: str, prefix: str = ">") -> Tuple[Optional[ModCommand], List[str]]:
    """Split a moderation channel message into (command, tokens).

    The forced reset is only recognised as the whole phrase; every other
    command is picked by the first token.
    """
    normalized = normalize(text)
    if not normalized:
        return None, []
    if normalized == prefix + FORCE_RESET_PHRASE:
        return ModCommand.FORCE_RESET, [normalized]

    tokens = normalized.split(" ")
    head = tokens[0]
    if not head.startswith(prefix):
        return None, tokens
    return _BY_NAME.get(head[len(prefix):]), tokens


def parse_parts(tokens: List[str]) -> Optional[int]:
    if len(tokens) < 2:
        return None
    try:
        parts = int(tokens[1])
    except ValueError:
        return None
    return parts if parts > 0 else None


Handler = Callable[[List[str]], Awaitable[Any]]


class ChallengeStateMachine:
    """Owns the round state; the only writer of the persisted round record."""

    def __init__(
        self,
        store: RecordStore,
        engine: AggregationEngine,
        outbox: Outbox,
        texts: TextResolver,
        moderation_channel_id: int,
        challenge_channel_id: int,
        prefix: str = ">",
    ):
        self.store = store
        self.engine = engine
        self.outbox = outbox
        self.texts = texts
        self.moderation_channel_id = moderation_channel_id
        self.challenge_channel_id = challenge_channel_id
        self.prefix = prefix
        self.state = RoundState()

        no_active = partial(self._reject, "no_active_challenge")
        self.actions: Dict[Status, Dict[ModCommand, Handler]] = {
            Status.IDLE: {
                ModCommand.START: self._start,
                ModCommand.STOP: no_active,
                ModCommand.CURRENT: no_active,
                ModCommand.RESET: no_active,
                ModCommand.FORCE_RESET: no_active,
                ModCommand.PUBLISH: no_active,
            },
            Status.ACTIVE: {
                ModCommand.START: partial(self._reject, "already_started"),
                ModCommand.STOP: self._stop,
                ModCommand.CURRENT: self._current,
                ModCommand.RESET: partial(self._reject, "reset_active_challenge"),
                ModCommand.FORCE_RESET: self._reset,
                ModCommand.PUBLISH: partial(self._reject, "stop_first"),
            },
            Status.STOPPED: {
                ModCommand.START: partial(self._reject, "not_published"),
                ModCommand.STOP: partial(self._reject, "already_stopped"),
                ModCommand.CURRENT: self._current,
                ModCommand.RESET: self._reset,
                ModCommand.FORCE_RESET: self._reset,
                ModCommand.PUBLISH: self._publish,
            },
        }

    def load(self):
        self.state = RoundState.from_doc(self.store.get_state())
        logger.info(
            "Round state: %s (round %s, %d part(s))",
            self.state.status.value, self.state.round_id, self.state.part_count,
        )

    # ---------- dispatch ----------
    async def handle(self, text: str) -> bool:
        command, tokens = parse_command(text, self.prefix)
        if command is None:
            return False
        try:
            await self.dispatch(command, tokens)
        except Exception:
            logger.exception("Moderator command %s failed in state %s", command.value, self.state.status.value)
        return True

    async def dispatch(self, command: ModCommand, tokens: List[str]):
        if command is ModCommand.HELP:
            await self._say(self.moderation_channel_id, "help", prefix=self.prefix)
            return
        logger.debug("%s while %s", command.value, self.state.status.value)
        await self.actions[self.state.status][command](tokens)

    async def _transition(self, new_state: RoundState):
        # persist first; memory only follows a durable write
        await self.store.put_state(new_state.to_doc())
        old, self.state = self.state, new_state
        logger.info("Round %s -> %s (round %s)", old.status.value, new_state.status.value, new_state.round_id)
        await self.engine.refresh_status(self.state)

    async def _say(self, channel_id: int, key: str, **params: Any):
        try:
            await self.outbox.send(channel_id, self.texts(key, **params))
        except Exception:
            logger.exception("Failed to send %s message", key)

    # ---------- actions ----------
    async def _reject(self, key: str, tokens: List[str]):
        await self._say(self.moderation_channel_id, key, prefix=self.prefix)

    async def _start(self, tokens: List[str]):
        parts = parse_parts(tokens)
        if parts is None:
            await self._say(self.moderation_channel_id, "specify_parts", prefix=self.prefix)
            return

        await self._transition(RoundState(Status.ACTIVE, new_round_id(), parts))
        await self._say(self.moderation_channel_id, "started_mod", num=parts)
        await self._say(self.challenge_channel_id, "started")

    async def _stop(self, tokens: List[str]):
        await self._transition(RoundState(Status.STOPPED, self.state.round_id, self.state.part_count))
        await self._say(self.challenge_channel_id, "stopped")
        await self._say(self.moderation_channel_id, "stopped_mod")
        await self.engine.review(self.state, record_refs=True)

    async def _current(self, tokens: List[str]):
        await self.engine.review(self.state)

    async def _reset(self, tokens: List[str]):
        await self._transition(RoundState(Status.IDLE, None, self.state.part_count))
        await self._say(self.moderation_channel_id, "reset")

    async def _publish(self, tokens: List[str]):
        await self.engine.publish(self.state)
        await self._transition(RoundState(Status.IDLE, None, self.state.part_count))
        await self._say(self.moderation_channel_id, "published")
