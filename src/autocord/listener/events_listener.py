"""Event listener Cog for Autocord.

This cog turns py-cord gateway events into InboundEvents and runs them
through the rule engine. Bot authors and DMs are ignored. Each event is
handled in its own task by py-cord, so a failure here only affects the
event being processed.
"""

from __future__ import annotations

import discord
from discord.ext import commands

from autocord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
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
from autocord.engine.errors import StoreUnavailableError
from autocord.engine.rule_engine import RuleEngine
from autocord.util.logger import get_logger

logger = get_logger("events_listener")

MEMBER_JOIN_EVENT = "guildMemberAdd"
MEMBER_LEAVE_EVENT = "guildMemberRemove"


# ==========================================
# Translation helpers
# ==========================================

def actor_from_member(member: discord.Member | discord.User) -> Actor:
    avatar = getattr(member, "display_avatar", None)
    permissions = getattr(member, "guild_permissions", None)
    return Actor(
        id=str(UserID.from_user(member)),
        name=member.name,
        display_name=getattr(member, "display_name", "") or member.name,
        avatar_url=str(avatar.url) if avatar else "",
        role_ids=frozenset(str(role.id) for role in getattr(member, "roles", ())),
        is_admin=bool(permissions and permissions.administrator),
        is_bot=bool(member.bot),
    )


def guild_info(guild: discord.Guild) -> GuildInfo:
    return GuildInfo(
        id=str(GuildID.from_guild(guild)),
        name=guild.name,
        member_count=guild.member_count or 0,
        icon_url=str(guild.icon.url) if guild.icon else None,
    )


def channel_info(channel) -> ChannelInfo | None:
    if channel is None:
        return None
    return ChannelInfo(id=str(ChannelID.from_channel(channel)), name=getattr(channel, "name", "") or "")


def message_event(message: discord.Message) -> InboundEvent | None:
    """Build a message event, or None for DMs and bot-authored messages."""
    if message.guild is None or message.author.bot:
        return None
    return InboundEvent(
        kind=EventKind.MESSAGE,
        guild=guild_info(message.guild),
        actor=actor_from_member(message.author),
        channel=channel_info(message.channel),
        payload=MessagePayload(
            content=message.content or "",
            message_id=str(MessageID.from_message(message)),
            attachments=tuple(
                Attachment(filename=a.filename, size=a.size, url=a.url, content_type=a.content_type)
                for a in message.attachments
            ),
        ),
    )


def member_event(member: discord.Member, event_name: str) -> InboundEvent:
    """Build a named member event. Delivered to the guild's system channel when it has one."""
    return InboundEvent(
        kind=EventKind.EVENT,
        guild=guild_info(member.guild),
        actor=actor_from_member(member),
        channel=channel_info(member.guild.system_channel),
        payload=EventPayload(
            event_name=event_name,
            data={"userId": str(member.id), "username": member.name},
        ),
    )


def reaction_event(
    payload: discord.RawReactionActionEvent,
    guild: discord.Guild,
    member: discord.Member,
    channel,
    kind: EventKind,
) -> InboundEvent:
    emoji = payload.emoji
    return InboundEvent(
        kind=kind,
        guild=guild_info(guild),
        actor=actor_from_member(member),
        channel=channel_info(channel),
        payload=ReactionPayload(
            emoji=ReactionEmoji(
                name=emoji.name or "",
                id=str(emoji.id) if emoji.id else None,
                text=str(emoji),
            ),
            message_id=str(payload.message_id),
        ),
    )


# ==========================================
# Cog
# ==========================================

class EventsListenerCog(commands.Cog):
    """Cog forwarding gateway events to the rule engine."""

    def __init__(self, discord_bot_instance, engine: RuleEngine):
        """
        Initialize the events listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        engine:
            Rule engine that processes every translated event.
        """
        self.bot = discord_bot_instance
        self.engine = engine
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Set the bot's presence once connected."""
        if self.bot.user:
            await self.bot.change_presence(
                status=discord.Status.online,
                activity=discord.Activity(type=discord.ActivityType.watching, name="for triggers"),
            )
            logger.info("[EVENTS LISTENER] Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        else:
            logger.warning("[EVENTS LISTENER] Bot partially connected, but user information not yet available.")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        event = message_event(message)
        if event is None:
            return
        await self._dispatch(event)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        if member.bot:
            return
        await self._dispatch(member_event(member, MEMBER_JOIN_EVENT))

    @commands.Cog.listener(name="on_member_remove")
    async def on_member_remove(self, member: discord.Member):
        if member.bot:
            return
        await self._dispatch(member_event(member, MEMBER_LEAVE_EVENT))

    @commands.Cog.listener(name="on_raw_reaction_add")
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        await self._handle_reaction(payload, EventKind.REACTION_ADD)

    @commands.Cog.listener(name="on_raw_reaction_remove")
    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent):
        await self._handle_reaction(payload, EventKind.REACTION_REMOVE)

    async def _handle_reaction(self, payload: discord.RawReactionActionEvent, kind: EventKind) -> None:
        if payload.guild_id is None:
            return
        guild = self.bot.get_guild(payload.guild_id)
        if guild is None:
            return

        # Removal events carry no member
        member = payload.member or guild.get_member(payload.user_id)
        if member is None:
            try:
                member = await guild.fetch_member(payload.user_id)
            except discord.HTTPException as exc:
                logger.debug("[EVENTS LISTENER] Could not resolve reacting member %s: %s", payload.user_id, exc)
                return
        if member.bot:
            return

        channel = guild.get_channel_or_thread(payload.channel_id)
        await self._dispatch(reaction_event(payload, guild, member, channel, kind))

    async def _dispatch(self, event: InboundEvent) -> None:
        try:
            await self.engine.handle_event(event)
        except StoreUnavailableError as exc:
            logger.error("[EVENTS LISTENER] State store unavailable for %s event in guild %s: %s", event.kind.value, event.guild_id, exc)
        except Exception:
            logger.exception("[EVENTS LISTENER] Failed to process %s event in guild %s", event.kind.value, event.guild_id)


def setup(discord_bot_instance, engine: RuleEngine):
    """
    Register the EventsListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    engine:
        Rule engine the cog forwards events to.
    """
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, engine))
