from types import SimpleNamespace
from unittest.mock import AsyncMock

import discord
import pytest

from autocord.datatypes.rule_datatypes import EmbedField
from autocord.engine.errors import ConfigurationError, PlatformPermissionError, TransientDeliveryError
from autocord.engine.platform_sink import EmbedPayload
from autocord.util.discord_sink import DiscordSink, to_discord_embed


def http_error(cls, status):
    return cls(SimpleNamespace(status=status, reason="Error"), "boom")


@pytest.fixture
def member():
    return SimpleNamespace(add_roles=AsyncMock(), remove_roles=AsyncMock(), timeout=AsyncMock())


@pytest.fixture
def partial_message():
    return SimpleNamespace(delete=AsyncMock())


@pytest.fixture
def channel(partial_message):
    return SimpleNamespace(
        send=AsyncMock(return_value=SimpleNamespace(id=555)),
        get_partial_message=lambda message_id: partial_message,
    )


@pytest.fixture
def guild(member):
    return SimpleNamespace(
        roles=[SimpleNamespace(id=1, name="@everyone"), SimpleNamespace(id=2, name="Member")],
        text_channels=[SimpleNamespace(id=10, name="general")],
        get_member=lambda user_id: member,
        fetch_member=AsyncMock(),
        kick=AsyncMock(),
        ban=AsyncMock(),
    )


@pytest.fixture
def user():
    return SimpleNamespace(send=AsyncMock())


@pytest.fixture
def sink(guild, channel, user):
    bot = SimpleNamespace(
        get_guild=lambda guild_id: guild if guild_id == 1 else None,
        get_channel=lambda channel_id: channel,
        fetch_channel=AsyncMock(),
        get_user=lambda user_id: user,
        fetch_user=AsyncMock(),
    )
    return DiscordSink(bot)


@pytest.mark.asyncio
async def test_lookups(sink):
    assert [(r.id, r.name) for r in await sink.list_roles("1")] == [("1", "@everyone"), ("2", "Member")]
    assert [(c.id, c.name) for c in await sink.list_channels("1")] == [("10", "general")]


@pytest.mark.asyncio
async def test_unknown_guild_is_configuration_error(sink):
    with pytest.raises(ConfigurationError):
        await sink.list_roles("2")


@pytest.mark.asyncio
async def test_send_message_returns_message_id(sink, channel):
    assert await sink.send_message("10", "hello") == "555"
    channel.send.assert_awaited_once_with(content="hello")


@pytest.mark.asyncio
async def test_send_failures_are_delivery_errors(sink, channel):
    channel.send.side_effect = http_error(discord.Forbidden, 403)
    with pytest.raises(TransientDeliveryError):
        await sink.send_message("10", "hello")

    channel.send.side_effect = http_error(discord.HTTPException, 500)
    with pytest.raises(TransientDeliveryError):
        await sink.send_embed("10", EmbedPayload(title="t"))


@pytest.mark.asyncio
async def test_role_forbidden_is_permission_error(sink, member):
    member.add_roles.side_effect = http_error(discord.Forbidden, 403)
    with pytest.raises(PlatformPermissionError):
        await sink.add_role("1", "2", "2")


@pytest.mark.asyncio
async def test_role_changes_and_moderation(sink, member, guild):
    await sink.remove_role("1", "2", "2", reason="rule")
    role = member.remove_roles.await_args.args[0]
    assert role.id == 2

    await sink.timeout("1", "2", 15, reason="cool off")
    member.timeout.assert_awaited_once()

    await sink.kick("1", "2", reason="bye")
    await sink.ban("1", "2", reason="gone")
    assert guild.kick.await_args.args[0].id == 2
    assert guild.ban.await_args.kwargs["reason"] == "gone"


@pytest.mark.asyncio
async def test_deleting_missing_message_is_not_an_error(sink, partial_message):
    partial_message.delete.side_effect = http_error(discord.NotFound, 404)
    await sink.delete_message("10", "99")
    partial_message.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_closed_dms_are_delivery_errors(sink, user):
    user.send.side_effect = http_error(discord.Forbidden, 403)
    with pytest.raises(TransientDeliveryError):
        await sink.send_direct_message("2", content="hi")


def test_to_discord_embed():
    embed = to_discord_embed(
        EmbedPayload(
            title="Title",
            description="Body",
            color=0xFF0000,
            fields=(EmbedField("a", "b", True),),
            footer="foot",
        )
    )
    assert embed.title == "Title"
    assert embed.description == "Body"
    assert embed.fields[0].name == "a"
    assert embed.fields[0].inline is True
    assert embed.footer.text == "foot"
