"""
In-memory PlatformSink and event builders shared by the tests.
"""

from typing import Any, Dict, List, Tuple

from autocord.datatypes.event_datatypes import (
    Actor,
    Attachment,
    ChannelInfo,
    EventKind,
    EventPayload,
    GuildInfo,
    InboundEvent,
    MessagePayload,
    ReactionEmoji,
    ReactionPayload,
)
from autocord.datatypes.rule_datatypes import Rule
from autocord.engine.platform_sink import ChannelRef, PlatformSink, RoleRef

GUILD = GuildInfo(id="G1", name="Test Guild", member_count=42)
CHANNEL = ChannelInfo(id="C1", name="general")


class FakeSink(PlatformSink):
    """Records every call; ``fail(method, exc)`` makes a method raise after recording."""

    def __init__(self, roles=(), channels=()):
        self.roles: List[RoleRef] = list(roles)
        self.channels: List[ChannelRef] = list(channels) or [ChannelRef("C1", "general")]
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[str, Exception] = {}
        self._next_message_id = 1000

    def fail(self, method: str, exc: Exception) -> None:
        self.failures[method] = exc

    def calls_to(self, method: str) -> List[Tuple[Any, ...]]:
        return [call[1:] for call in self.calls if call[0] == method]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    def _message_id(self) -> str:
        self._next_message_id += 1
        return str(self._next_message_id)

    async def list_roles(self, guild_id):
        return list(self.roles)

    async def list_channels(self, guild_id):
        return list(self.channels)

    async def send_message(self, channel_id, content):
        self._record("send_message", channel_id, content)
        return self._message_id()

    async def send_embed(self, channel_id, embed):
        self._record("send_embed", channel_id, embed)
        return self._message_id()

    async def delete_message(self, channel_id, message_id):
        self._record("delete_message", channel_id, message_id)

    async def add_role(self, guild_id, user_id, role_id, reason=None):
        self._record("add_role", guild_id, user_id, role_id)

    async def remove_role(self, guild_id, user_id, role_id, reason=None):
        self._record("remove_role", guild_id, user_id, role_id)

    async def kick(self, guild_id, user_id, reason=None):
        self._record("kick", guild_id, user_id, reason)

    async def ban(self, guild_id, user_id, reason=None):
        self._record("ban", guild_id, user_id, reason)

    async def timeout(self, guild_id, user_id, minutes, reason=None):
        self._record("timeout", guild_id, user_id, minutes, reason)

    async def send_direct_message(self, user_id, content=None, embed=None):
        self._record("send_direct_message", user_id, content, embed)


def make_actor(user_id="U1", roles=(), admin=False, name=None):
    name = name or f"user{user_id}"
    return Actor(id=user_id, name=name, display_name=name, role_ids=frozenset(roles), is_admin=admin)


def message_event(content, actor=None, channel=CHANNEL, attachments=(), message_id="M1"):
    return InboundEvent(
        kind=EventKind.MESSAGE,
        guild=GUILD,
        actor=actor or make_actor(),
        channel=channel,
        payload=MessagePayload(content=content, message_id=message_id, attachments=tuple(attachments)),
    )


def reaction_event(emoji, kind=EventKind.REACTION_ADD, actor=None, channel=CHANNEL):
    if not isinstance(emoji, ReactionEmoji):
        emoji = ReactionEmoji(name=emoji)
    return InboundEvent(
        kind=kind,
        guild=GUILD,
        actor=actor or make_actor(),
        channel=channel,
        payload=ReactionPayload(emoji=emoji, message_id="M9"),
    )


def member_event(event_name="guildMemberAdd", actor=None, channel=None):
    return InboundEvent(
        kind=EventKind.EVENT,
        guild=GUILD,
        actor=actor or make_actor(),
        channel=channel,
        payload=EventPayload(event_name=event_name),
    )


def attachment(filename, size=1024):
    return Attachment(filename=filename, size=size, url=f"https://cdn.example/{filename}")


def make_rule(rule_id, trigger, actions=(), **kwargs):
    return Rule(id=rule_id, owner_scope_id="G1", trigger=trigger, actions=tuple(actions), **kwargs)
