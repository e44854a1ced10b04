"""
The outbound side of the engine: everything it may ask the chat platform to do.

The engine only talks to a PlatformSink. The py-cord implementation lives in
``autocord.util.discord_sink``; tests use an in-memory one. Implementations
raise the engine's own errors:

- PlatformPermissionError when the platform refuses a role or moderation change
- TransientDeliveryError when a message, embed or DM cannot be delivered
- ConfigurationError when a referenced guild, channel or role does not exist
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Tuple

from autocord.datatypes.rule_datatypes import EmbedField


@dataclass(frozen=True, slots=True)
class RoleRef:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class ChannelRef:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class EmbedPayload:
    """A fully resolved embed, ready to send."""

    title: str | None = None
    description: str | None = None
    color: int | None = None
    fields: Tuple[EmbedField, ...] = ()
    footer: str | None = None
    thumbnail: str | None = None
    image: str | None = None
    timestamp: datetime | None = None


class PlatformSink:
    """Base class for platform adapters. Every method must be overridden."""

    async def list_roles(self, guild_id: str) -> List[RoleRef]:
        raise NotImplementedError

    async def list_channels(self, guild_id: str) -> List[ChannelRef]:
        raise NotImplementedError

    async def send_message(self, channel_id: str, content: str) -> str | None:
        """Post ``content`` and return the new message's id."""
        raise NotImplementedError

    async def send_embed(self, channel_id: str, embed: EmbedPayload) -> str | None:
        raise NotImplementedError

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        """Delete a message. Deleting one that is already gone is not an error."""
        raise NotImplementedError

    async def add_role(self, guild_id: str, user_id: str, role_id: str, reason: str | None = None) -> None:
        raise NotImplementedError

    async def remove_role(self, guild_id: str, user_id: str, role_id: str, reason: str | None = None) -> None:
        raise NotImplementedError

    async def kick(self, guild_id: str, user_id: str, reason: str | None = None) -> None:
        raise NotImplementedError

    async def ban(self, guild_id: str, user_id: str, reason: str | None = None) -> None:
        raise NotImplementedError

    async def timeout(self, guild_id: str, user_id: str, minutes: int, reason: str | None = None) -> None:
        raise NotImplementedError

    async def send_direct_message(
        self,
        user_id: str,
        content: str | None = None,
        embed: EmbedPayload | None = None,
    ) -> None:
        raise NotImplementedError
