from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from autocord.datatypes.event_datatypes import EventKind, EventPayload, MessagePayload, ReactionPayload
from autocord.engine.errors import StoreUnavailableError
from autocord.listener import events_listener


class FakeEmoji:
    def __init__(self, name, emoji_id=None):
        self.name = name
        self.id = emoji_id

    def __str__(self):
        return f"<:{self.name}:{self.id}>" if self.id else self.name


def make_member(member_id=2, *, bot=False, admin=False, roles=(7,)):
    return SimpleNamespace(
        id=member_id,
        name="alice",
        display_name="Alice",
        display_avatar=SimpleNamespace(url="https://cdn.example/a.png"),
        roles=[SimpleNamespace(id=r) for r in roles],
        guild_permissions=SimpleNamespace(administrator=admin),
        bot=bot,
    )


@pytest.fixture
def channel():
    return SimpleNamespace(id=10, name="general")


@pytest.fixture
def guild(channel):
    return SimpleNamespace(
        id=1,
        name="Guild",
        member_count=5,
        icon=None,
        system_channel=channel,
        get_member=lambda user_id: None,
        fetch_member=AsyncMock(return_value=make_member()),
        get_channel_or_thread=lambda channel_id: channel,
    )


@pytest.fixture
def engine():
    return SimpleNamespace(handle_event=AsyncMock())


@pytest.fixture
def fake_bot(guild):
    return SimpleNamespace(
        user=SimpleNamespace(id=999),
        get_guild=lambda guild_id: guild if guild_id == 1 else None,
        change_presence=AsyncMock(),
        add_cog=lambda cog: None,
    )


@pytest.fixture
def cog(fake_bot, engine):
    return events_listener.EventsListenerCog(fake_bot, engine)


def make_message(guild, channel, *, author=None, content="!ping"):
    return SimpleNamespace(
        id=55,
        guild=guild,
        channel=channel,
        author=author or make_member(),
        content=content,
        attachments=[SimpleNamespace(filename="a.png", size=2048, url="https://cdn.example/a.png", content_type="image/png")],
    )


def test_message_event_translation(guild, channel):
    event = events_listener.message_event(make_message(guild, channel))

    assert event.kind is EventKind.MESSAGE
    assert (event.guild_id, event.channel_id, event.message_id) == ("1", "10", "55")
    assert event.actor.id == "2"
    assert event.actor.display_name == "Alice"
    assert event.actor.role_ids == frozenset({"7"})
    assert not event.actor.is_admin
    assert isinstance(event.payload, MessagePayload)
    assert event.payload.content == "!ping"
    assert event.payload.attachments[0].extension == "png"
    assert event.payload.attachments[0].size == 2048


def test_dm_and_bot_messages_are_ignored(guild, channel):
    assert events_listener.message_event(make_message(None, channel)) is None
    assert events_listener.message_event(make_message(guild, channel, author=make_member(bot=True))) is None


def test_member_event_uses_system_channel(guild):
    member = make_member(admin=True)
    member.guild = guild
    event = events_listener.member_event(member, events_listener.MEMBER_JOIN_EVENT)

    assert event.kind is EventKind.EVENT
    assert isinstance(event.payload, EventPayload)
    assert event.payload.event_name == "guildMemberAdd"
    assert event.channel_id == "10"
    assert event.actor.is_admin


@pytest.mark.asyncio
async def test_on_message_forwards_to_engine(cog, engine, guild, channel):
    await cog.on_message(make_message(guild, channel))
    engine.handle_event.assert_awaited_once()
    event = engine.handle_event.await_args.args[0]
    assert event.payload.content == "!ping"


@pytest.mark.asyncio
async def test_on_message_ignores_bots(cog, engine, guild, channel):
    await cog.on_message(make_message(guild, channel, author=make_member(bot=True)))
    engine.handle_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_engine_errors_do_not_escape(cog, engine, guild, channel):
    engine.handle_event.side_effect = StoreUnavailableError("locked")
    await cog.on_message(make_message(guild, channel))

    engine.handle_event.side_effect = RuntimeError("bug")
    await cog.on_message(make_message(guild, channel))
    assert engine.handle_event.await_count == 2


@pytest.mark.asyncio
async def test_reaction_removal_fetches_member(cog, engine, guild):
    payload = SimpleNamespace(
        guild_id=1,
        channel_id=10,
        user_id=2,
        message_id=99,
        member=None,
        emoji=FakeEmoji("party", 123),
    )
    await cog.on_raw_reaction_remove(payload)

    guild.fetch_member.assert_awaited_once_with(2)
    event = engine.handle_event.await_args.args[0]
    assert event.kind is EventKind.REACTION_REMOVE
    assert isinstance(event.payload, ReactionPayload)
    assert event.payload.emoji.name == "party"
    assert event.payload.emoji.id == "123"
    assert event.payload.emoji.canonical == "<:party:123>"
    assert event.message_id == "99"


@pytest.mark.asyncio
async def test_reactions_outside_guilds_or_by_bots_are_ignored(cog, engine):
    await cog.on_raw_reaction_add(
        SimpleNamespace(guild_id=None, channel_id=1, user_id=2, message_id=3, member=None, emoji=FakeEmoji("x"))
    )
    await cog.on_raw_reaction_add(
        SimpleNamespace(guild_id=1, channel_id=10, user_id=2, message_id=3, member=make_member(bot=True), emoji=FakeEmoji("x"))
    )
    engine.handle_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_member_join_and_leave(cog, engine, guild):
    member = make_member()
    member.guild = guild
    await cog.on_member_join(member)
    await cog.on_member_remove(member)
    names = [call.args[0].payload.event_name for call in engine.handle_event.await_args_list]
    assert names == ["guildMemberAdd", "guildMemberRemove"]


@pytest.mark.asyncio
async def test_on_ready_sets_presence(cog, fake_bot):
    await cog.on_ready()
    fake_bot.change_presence.assert_awaited_once()


def test_setup_registers_cog(fake_bot, engine):
    added = []
    fake_bot.add_cog = added.append
    events_listener.setup(fake_bot, engine)
    assert isinstance(added[0], events_listener.EventsListenerCog)
    assert added[0].engine is engine
