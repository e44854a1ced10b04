"""Tests for rule and filter administration."""

import pytest

from autocord.datatypes.filter_datatypes import FilterKind, ViolationRecord
from autocord.datatypes.rule_datatypes import MatchType, MessageTrigger, SendMessageAction
from autocord.engine.errors import ConfigurationError
from autocord.engine.rule_admin import RuleAdmin

from fakes import make_rule


@pytest.fixture
def admin(store):
    return RuleAdmin(store)


@pytest.mark.asyncio
async def test_upsert_assigns_id_and_forces_scope(admin):
    rule = await admin.upsert_rule(
        "G7",
        {
            "guildId": "someone-else",
            "trigger": {"type": "message", "matchType": "exact", "text": "!hi"},
            "actions": [{"type": "message", "content": "hello"}],
        },
    )
    assert rule.id
    assert rule.owner_scope_id == "G7"
    assert await admin.get_rule("G7", rule.id) == rule
    assert await admin.list_rules("G7") == [rule]
    assert await admin.list_rules("someone-else") == []


@pytest.mark.asyncio
async def test_upsert_replaces_existing_rule_in_place(admin):
    first = await admin.upsert_rule("G1", make_rule("a", MessageTrigger(MatchType.EXACT, "a")))
    await admin.upsert_rule("G1", make_rule("b", MessageTrigger(MatchType.EXACT, "b")))
    edited = await admin.upsert_rule("G1", make_rule("a", MessageTrigger(MatchType.EXACT, "a2")))

    assert edited.id == first.id
    assert [r.trigger.text for r in await admin.list_rules("G1")] == ["a2", "b"]


@pytest.mark.asyncio
async def test_upsert_rejects_bad_regex_and_unknown_types(admin):
    with pytest.raises(ConfigurationError):
        await admin.upsert_rule("G1", make_rule("r", MessageTrigger(MatchType.REGEX, "[")))
    with pytest.raises(ConfigurationError):
        await admin.upsert_rule("G1", {"trigger": {"type": "message"}, "actions": [{"type": "nuke"}]})
    assert await admin.list_rules("G1") == []


@pytest.mark.asyncio
async def test_delete_and_usage(admin):
    await admin.upsert_rule("G1", make_rule("r", MessageTrigger(MatchType.EXACT, "x")))
    await admin.rules.increment_fire_count("G1", "r")
    assert await admin.usage("G1", "r") == 1
    await admin.reset_usage("G1", "r")
    assert await admin.usage("G1", "r") == 0

    assert await admin.delete_rule("G1", "r") is True
    assert await admin.delete_rule("G1", "r") is False
    assert await admin.get_rule("G1", "r") is None


@pytest.mark.asyncio
async def test_content_filter_crud(admin):
    saved = await admin.set_content_filter(
        {"guildId": "G1", "channelId": "C1", "rules": [{"type": "min_length", "length": 3}]}
    )
    assert saved.rules[0].kind is FilterKind.MIN_LENGTH
    assert await admin.get_content_filter("G1", "C1") == saved
    assert await admin.get_content_filter("G1") is None
    assert await admin.delete_content_filter("G1", "C1") is True

    with pytest.raises(ConfigurationError):
        await admin.set_content_filter({"channelId": "C1"})


@pytest.mark.asyncio
async def test_list_violations(admin, store):
    await store.append_violation(
        ViolationRecord(guild_id="G1", rule_id="f", actor_id="U1", timestamp_ms=1, rule_kind="min_length")
    )
    [record] = await admin.list_violations("G1")
    assert record.rule_kind == "min_length"


@pytest.mark.asyncio
async def test_preview_has_no_side_effects(admin):
    rule = make_rule("r", MessageTrigger(MatchType.EXACT, "x"), [SendMessageAction("Hi {user.name}")])
    assert admin.preview(rule, {"user": {"name": "Test"}}) == "Hi Test"
    assert await admin.list_rules("G1") == []
