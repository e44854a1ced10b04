"""
py-cord implementation of the engine's PlatformSink.

Lookups go to the client cache first and fall back to a fetch. Every
platform call translates py-cord's exceptions into the engine's taxonomy:
Forbidden becomes PlatformPermissionError (or TransientDeliveryError for
DMs, where it means the user closed their DMs), anything else from the HTTP
layer becomes TransientDeliveryError.
"""

from __future__ import annotations

import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

import discord

from autocord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID, UserID
from autocord.engine.errors import ConfigurationError, PlatformPermissionError, TransientDeliveryError
from autocord.engine.platform_sink import ChannelRef, EmbedPayload, PlatformSink, RoleRef
from autocord.util.logger import get_logger

logger = get_logger("discord_sink")


@asynccontextmanager
async def platform_call(what: str, forbidden=PlatformPermissionError) -> AsyncIterator[None]:
    """Translate py-cord errors raised inside the block."""
    try:
        yield
    except discord.Forbidden as exc:
        raise forbidden(f"{what}: missing permissions ({exc.text or exc.status})") from exc
    except discord.NotFound as exc:
        raise TransientDeliveryError(f"{what}: not found") from exc
    except discord.HTTPException as exc:
        raise TransientDeliveryError(f"{what}: {exc}") from exc


def to_discord_embed(payload: EmbedPayload) -> discord.Embed:
    embed = discord.Embed(
        title=payload.title,
        description=payload.description,
        color=payload.color,
        timestamp=payload.timestamp,
    )
    for field in payload.fields:
        embed.add_field(name=field.name, value=field.value, inline=field.inline)
    if payload.footer:
        embed.set_footer(text=payload.footer)
    if payload.thumbnail:
        embed.set_thumbnail(url=payload.thumbnail)
    if payload.image:
        embed.set_image(url=payload.image)
    return embed


class DiscordSink(PlatformSink):
    """Carries out engine side effects through a py-cord client."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _guild(self, guild_id: str) -> discord.Guild:
        guild = self.bot.get_guild(GuildID(guild_id).to_int())
        if guild is None:
            raise ConfigurationError(f"Guild {guild_id} is not available")
        return guild

    async def _channel(self, channel_id: str) -> discord.abc.Messageable:
        snowflake = ChannelID(channel_id).to_int()
        channel = self.bot.get_channel(snowflake)
        if channel is None:
            async with platform_call(f"fetch channel {channel_id}"):
                channel = await self.bot.fetch_channel(snowflake)
        return channel

    async def _member(self, guild_id: str, user_id: str) -> discord.Member:
        guild = self._guild(guild_id)
        member = guild.get_member(UserID(user_id).to_int())
        if member is None:
            async with platform_call(f"fetch member {user_id}"):
                member = await guild.fetch_member(UserID(user_id).to_int())
        return member

    async def list_roles(self, guild_id: str) -> List[RoleRef]:
        return [RoleRef(id=str(RoleID.from_role(role)), name=role.name) for role in self._guild(guild_id).roles]

    async def list_channels(self, guild_id: str) -> List[ChannelRef]:
        return [
            ChannelRef(id=str(ChannelID.from_channel(channel)), name=channel.name)
            for channel in self._guild(guild_id).text_channels
        ]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, channel_id: str, content: str) -> str | None:
        channel = await self._channel(channel_id)
        async with platform_call(f"send message to {channel_id}", forbidden=TransientDeliveryError):
            message = await channel.send(content=content)
        return str(MessageID.from_message(message))

    async def send_embed(self, channel_id: str, embed: EmbedPayload) -> str | None:
        channel = await self._channel(channel_id)
        async with platform_call(f"send embed to {channel_id}", forbidden=TransientDeliveryError):
            message = await channel.send(embed=to_discord_embed(embed))
        return str(MessageID.from_message(message))

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        channel = await self._channel(channel_id)
        message = channel.get_partial_message(MessageID(message_id).to_int())
        async with platform_call(f"delete message {message_id}"):
            try:
                await message.delete()
            except discord.NotFound:
                logger.debug("[DISCORD SINK] Message %s was already deleted", message_id)

    async def send_direct_message(
        self,
        user_id: str,
        content: str | None = None,
        embed: EmbedPayload | None = None,
    ) -> None:
        snowflake = UserID(user_id).to_int()
        user = self.bot.get_user(snowflake)
        async with platform_call(f"DM user {user_id}", forbidden=TransientDeliveryError):
            if user is None:
                user = await self.bot.fetch_user(snowflake)
            await user.send(content=content, embed=to_discord_embed(embed) if embed else None)

    # ------------------------------------------------------------------
    # Roles and moderation
    # ------------------------------------------------------------------

    async def add_role(self, guild_id: str, user_id: str, role_id: str, reason: str | None = None) -> None:
        member = await self._member(guild_id, user_id)
        async with platform_call(f"add role {role_id} to {user_id}"):
            await member.add_roles(discord.Object(id=RoleID(role_id).to_int()), reason=reason)

    async def remove_role(self, guild_id: str, user_id: str, role_id: str, reason: str | None = None) -> None:
        member = await self._member(guild_id, user_id)
        async with platform_call(f"remove role {role_id} from {user_id}"):
            await member.remove_roles(discord.Object(id=RoleID(role_id).to_int()), reason=reason)

    async def kick(self, guild_id: str, user_id: str, reason: str | None = None) -> None:
        guild = self._guild(guild_id)
        async with platform_call(f"kick {user_id}"):
            await guild.kick(discord.Object(id=UserID(user_id).to_int()), reason=reason)

    async def ban(self, guild_id: str, user_id: str, reason: str | None = None) -> None:
        guild = self._guild(guild_id)
        async with platform_call(f"ban {user_id}"):
            await guild.ban(discord.Object(id=UserID(user_id).to_int()), reason=reason)

    async def timeout(self, guild_id: str, user_id: str, minutes: int, reason: str | None = None) -> None:
        member = await self._member(guild_id, user_id)
        until = discord.utils.utcnow() + datetime.timedelta(minutes=minutes)
        async with platform_call(f"timeout {user_id}"):
            await member.timeout(until, reason=reason)
