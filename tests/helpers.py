"""Test doubles for the chat platform and the storage backend."""

from higawari_bot.models import ParticipantMessage
from higawari_bot.outbox import split_message
from higawari_bot.store import LocalJSONStore, RemoteStoreError


MOD_CH = 100
CHALLENGE_CH = 200


class FakeOutbox:
    """Records every post, one row per platform-sized chunk; refs are increasing ints."""

    def __init__(self, limit=2000):
        self.sent = []
        self.presence = []
        self.next_ref = 1000
        self.limit = limit
        self.fail_presence = False
        self.fail_when = None

    async def send(self, channel_id, text):
        if self.fail_when is not None and self.fail_when(text):
            raise RuntimeError("channel unavailable")
        refs = []
        for chunk in split_message(text, self.limit):
            self.next_ref += 1
            self.sent.append((channel_id, chunk, self.next_ref))
            refs.append(self.next_ref)
        return refs

    async def set_presence(self, text):
        if self.fail_presence:
            raise RuntimeError("presence unavailable")
        self.presence.append(text)

    def to(self, channel_id):
        return [text for ch, text, _ in self.sent if ch == channel_id]

    def clear(self):
        self.sent.clear()


class FlakyBackend(LocalJSONStore):
    """Local store whose saves can be made to fail on demand."""

    def __init__(self, path):
        super().__init__(path)
        self.fail_saves = False
        self.saves = 0

    async def save(self, session, data, sha):
        if self.fail_saves:
            raise RemoteStoreError("disk on fire")
        self.saves += 1
        return await super().save(session, data, sha)


class Participant:
    """A community member talking to the bot by DM."""

    def __init__(self, pid, name):
        self.pid = pid
        self.name = name
        self.replies = []

    def says(self, content, **kwargs):
        async def reply(text):
            self.replies.append(text)
        return ParticipantMessage(
            author_id=self.pid,
            display_name=self.name,
            content=content,
            reply=reply,
            **kwargs,
        )
