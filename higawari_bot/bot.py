from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import aiohttp
import discord

from .aggregation import AggregationEngine
from .config import Settings
from .i18n import TextResolver
from .intake import SubmissionIntake
from .models import ParticipantMessage
from .outbox import split_message
from .state_machine import ChallengeStateMachine
from .store import GitHubJSONStore, LocalJSONStore, RecordStore

logger = logging.getLogger(__name__)

# =========================================================
# Intents
# =========================================================
def make_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.messages = True
    intents.dm_messages = True
    intents.message_content = True
    return intents

# =========================================================
# Outbound messages
# =========================================================
class DiscordOutbox:
    def __init__(self, client: discord.Client):
        self.client = client

    async def channel(self, channel_id: int) -> discord.abc.Messageable:
        ch = self.client.get_channel(channel_id)
        if ch is None:
            ch = await self.client.fetch_channel(channel_id)
        return ch  # type: ignore[return-value]

    async def send_to(self, target: discord.abc.Messageable, text: str) -> List[int]:
        ids: List[int] = []
        for chunk in split_message(text):
            msg = await target.send(chunk)
            ids.append(msg.id)
        return ids

    async def send(self, channel_id: int, text: str) -> List[int]:
        return await self.send_to(await self.channel(channel_id), text)

    async def set_presence(self, text: str) -> None:
        await self.client.change_presence(activity=discord.Game(name=text))

# =========================================================
# Bot
# =========================================================
def make_backend(settings: Settings):
    if settings.use_github:
        return GitHubJSONStore(settings.github_repo, settings.github_token, settings.data_path)
    return LocalJSONStore(settings.data_path)


class HigawariBot(discord.Client):
    def __init__(self, settings: Settings, texts: Optional[TextResolver] = None):
        super().__init__(intents=make_intents())
        self.settings = settings
        self.texts = texts or TextResolver(settings.locale)

        self.web: Optional[aiohttp.ClientSession] = None
        self.store = RecordStore(make_backend(settings))
        self.outbox = DiscordOutbox(self)

        self.engine = AggregationEngine(
            self.store, self.outbox, self.texts,
            settings.moderation_channel_id, settings.challenge_channel_id,
        )
        self.machine = ChallengeStateMachine(
            self.store, self.engine, self.outbox, self.texts,
            settings.moderation_channel_id, settings.challenge_channel_id,
            prefix=settings.command_prefix,
        )
        self.intake = SubmissionIntake(self.store, self.machine, self.engine, self.texts)

        self.community: Optional[discord.Guild] = None
        self.crashed = False
        # one event at a time, writes and replies included
        self.event_lock = asyncio.Lock()

    # ---------- setup/persistence ----------
    async def setup_hook(self):
        self.web = aiohttp.ClientSession()
        self.store.session = self.web
        await self.store.load()
        self.machine.load()

    async def close(self):
        if self.web:
            await self.web.close()
        await super().close()

    async def on_ready(self):
        logger.info("Logged in as %s", self.user)
        self.community = self.resolve_community()
        if self.community is None:
            logger.warning("Challenge channel %s not visible; membership checks will fail", self.settings.challenge_channel_id)
        await self.engine.refresh_status(self.machine.state)

    def resolve_community(self) -> Optional[discord.Guild]:
        ch = self.get_channel(self.settings.challenge_channel_id)
        return getattr(ch, "guild", None)

    async def on_error(self, event_method: str, *args, **kwargs):
        logger.exception("Unhandled error in %s, shutting down", event_method)
        self.crashed = True
        await self.close()

    # ---------- inbound ----------
    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return

        if message.guild is None:
            async with self.event_lock:
                await self.handle_direct_message(message)
            return

        if message.channel.id == self.settings.moderation_channel_id:
            async with self.event_lock:
                await self.machine.handle(message.content)

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent):
        if payload.channel_id != self.settings.moderation_channel_id:
            return
        async with self.event_lock:
            await self.engine.mark_removed(payload.message_id)

    async def member_of_community(self, user: discord.abc.User) -> Optional[discord.Member]:
        guild = self.community or self.resolve_community()
        if guild is None:
            return None
        member = guild.get_member(user.id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user.id)
        except discord.NotFound:
            return None
        except discord.HTTPException:
            logger.exception("Member lookup failed for %s", user.id)
            return None

    async def handle_direct_message(self, message: discord.Message):
        member = await self.member_of_community(message.author)

        async def reply(text: str):
            return await self.outbox.send_to(message.channel, text)

        await self.intake.handle(ParticipantMessage(
            author_id=message.author.id,
            display_name=member.display_name if member else message.author.name,
            content=message.content,
            reply=reply,
            is_bot=message.author.bot,
            is_member=member is not None,
            has_attachments=len(message.attachments) > 0,
        ))
