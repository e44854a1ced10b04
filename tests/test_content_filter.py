"""Tests for moderation-style content filters."""

import pytest

from autocord.datatypes.event_datatypes import MessagePayload
from autocord.datatypes.filter_datatypes import ContentFilter, FilterKind, FilterResponse, FilterRule
from autocord.engine.content_filter import ContentFilterEngine, censor, check_rule, format_file_size, sanitize_mentions
from autocord.engine.errors import StoreUnavailableError, TransientDeliveryError
from autocord.repositories.filter_repo import FilterRepo

from fakes import attachment, message_event

MB = 1024 * 1024


def payload(content="", attachments=()):
    return MessagePayload(content=content, message_id="M1", attachments=tuple(attachments))


class TestCheckRule:
    @pytest.mark.parametrize(
        "kind,good,bad",
        [
            (FilterKind.MUST_CONTAIN_AUDIO, "song.MP3", "song.png"),
            (FilterKind.MUST_CONTAIN_IMAGE, "cat.jpeg", "cat.txt"),
            (FilterKind.MUST_CONTAIN_VIDEO, "clip.webm", "clip.mp3"),
        ],
    )
    def test_attachment_kinds(self, kind, good, bad):
        rule = FilterRule(id="f", kind=kind)
        assert check_rule(rule, payload(attachments=[attachment(good)])) is None
        assert check_rule(rule, payload(attachments=[attachment(bad)])) is not None
        assert check_rule(rule, payload("no files")) is not None

    def test_must_contain_file(self):
        rule = FilterRule(id="f", kind=FilterKind.MUST_CONTAIN_FILE)
        assert check_rule(rule, payload(attachments=[attachment("x.bin")])) is None
        assert check_rule(rule, payload("text")).kind == "missing_file"

    def test_blocked_domains(self):
        rule = FilterRule(id="f", kind=FilterKind.BLOCKED_DOMAINS, domains=("bad.example",))
        violation = check_rule(rule, payload("see https://BAD.example/page"))
        assert violation.detail == {"domain": "bad.example"}
        assert violation.message == "Links to bad.example are not allowed in this channel."
        assert check_rule(rule, payload("see https://good.example")) is None

    def test_required_and_blocked_text(self):
        required = FilterRule(id="f", kind=FilterKind.REQUIRED_TEXT, texts=("[LFG]",))
        assert check_rule(required, payload("[lfg] ranked tonight")) is None
        assert check_rule(required, payload("anyone up?")).detail == {"requiredText": "[LFG]"}

        blocked = FilterRule(id="f", kind=FilterKind.BLOCKED_TEXT, texts=("spoiler",), custom_message="No spoilers!")
        violation = check_rule(blocked, payload("SPOILER: they win"))
        assert violation.message == "No spoilers!"
        assert check_rule(blocked, payload("clean")) is None

    def test_lengths(self):
        short = FilterRule(id="f", kind=FilterKind.MIN_LENGTH, length=5)
        assert check_rule(short, payload("abcd")).detail == {"currentLength": 4, "requiredLength": 5}
        assert check_rule(short, payload("abcde")) is None

        long = FilterRule(id="f", kind=FilterKind.MAX_LENGTH)
        assert check_rule(long, payload("x" * 2000)) is None
        assert check_rule(long, payload("x" * 2001)).kind == "too_long"

    def test_block_large_files(self):
        rule = FilterRule(id="f", kind=FilterKind.BLOCK_LARGE_FILES, max_size_bytes=MB)
        assert check_rule(rule, payload(attachments=[attachment("ok.zip", MB)])) is None
        violation = check_rule(rule, payload(attachments=[attachment("big.zip", 2 * MB)]))
        assert violation.detail == {"fileSize": 2 * MB, "maxSize": MB, "fileName": "big.zip"}


def test_format_file_size():
    assert format_file_size(512) == "512 B"
    assert format_file_size(2048) == "2.0 KB"
    assert format_file_size(2 * MB) == "2.0 MB"


@pytest.fixture
def filter_engine(store, sink):
    return ContentFilterEngine(store, FilterRepo(store), sink, log_truncate=10)


async def install(store, *rules, channel_id="C1", log_channel_id=None):
    await FilterRepo(store).put(
        ContentFilter(guild_id="G1", channel_id=channel_id, log_channel_id=log_channel_id, rules=tuple(rules))
    )


@pytest.mark.asyncio
async def test_large_file_is_deleted_and_logged(filter_engine, store, sink):
    await install(store, FilterRule(id="size", kind=FilterKind.BLOCK_LARGE_FILES, max_size_bytes=MB))
    event = message_event("here you go", attachments=[attachment("big.zip", 2 * MB)])

    outcome = await filter_engine.process(event)

    assert outcome.deleted and outcome.recorded
    assert sink.calls_to("delete_message") == [("C1", "M1")]
    [record] = await store.list_violations("G1")
    assert record.rule_id == "size"
    assert record.rule_kind == "block_large_files"
    assert record.actor_id == "U1"
    assert record.detail["fileSize"] == 2 * MB


@pytest.mark.asyncio
async def test_clean_message_passes(filter_engine, store, sink):
    await install(store, FilterRule(id="f", kind=FilterKind.BLOCKED_TEXT, texts=("bad",)))
    assert await filter_engine.process(message_event("all good")) is None
    assert sink.calls == []


@pytest.mark.asyncio
async def test_only_first_violation_is_handled(filter_engine, store, sink):
    await install(
        store,
        FilterRule(id="first", kind=FilterKind.BLOCKED_TEXT, texts=("bad",)),
        FilterRule(id="second", kind=FilterKind.MIN_LENGTH, length=100),
    )
    outcome = await filter_engine.process(message_event("bad"))
    assert outcome.rule.id == "first"
    assert len(sink.calls_to("delete_message")) == 1
    assert len(await store.list_violations("G1")) == 1


@pytest.mark.asyncio
async def test_guild_wide_filter_applies_to_every_channel(filter_engine, store, sink):
    await install(store, FilterRule(id="words", kind=FilterKind.BLOCKED_TEXT, texts=("heck",)), channel_id="*")
    outcome = await filter_engine.process(message_event("what the heck"))
    assert outcome.content_filter.channel_id == "*"


@pytest.mark.asyncio
async def test_dm_and_log_post(filter_engine, store, sink):
    await install(
        store,
        FilterRule(id="f", kind=FilterKind.BLOCKED_TEXT, texts=("bad",), response=FilterResponse.DELETE_AND_DM),
        log_channel_id="C9",
    )
    outcome = await filter_engine.process(message_event("bad words everywhere"))

    assert outcome.dm_sent and outcome.logged
    [(user_id, content, notice)] = sink.calls_to("send_direct_message")
    assert user_id == "U1" and content is None
    assert notice.description == 'Your message contains blocked content: "bad"'
    [(channel_id, log_embed)] = sink.calls_to("send_embed")
    assert channel_id == "C9"
    fields = {field.name: field.value for field in log_embed.fields}
    assert fields["Message Content"] == "bad words ..."
    assert fields["Blocked Text"] == '"bad"'
    assert fields["Action Taken"] == "Delete Message & Send DM"


@pytest.mark.asyncio
async def test_secondary_effects_do_not_depend_on_delete(filter_engine, store, sink):
    sink.fail("delete_message", TransientDeliveryError("gone"))
    sink.fail("send_direct_message", TransientDeliveryError("DMs closed"))
    await install(
        store,
        FilterRule(id="f", kind=FilterKind.BLOCKED_TEXT, texts=("bad",), response=FilterResponse.DELETE_AND_DM),
        log_channel_id="C9",
    )
    outcome = await filter_engine.process(message_event("bad"))

    assert not outcome.deleted
    assert outcome.recorded and outcome.logged and not outcome.dm_sent
    assert len(await store.list_violations("G1")) == 1


@pytest.mark.asyncio
async def test_store_failure_surfaces_after_delete(store, sink):
    rule = FilterRule(id="f", kind=FilterKind.BLOCKED_TEXT, texts=("bad",))
    await install(store, rule)

    class BrokenLogStore:
        async def append_violation(self, record):
            raise StoreUnavailableError("disk full")

    engine = ContentFilterEngine(BrokenLogStore(), FilterRepo(store), sink)
    with pytest.raises(StoreUnavailableError):
        await engine.process(message_event("bad"))
    assert sink.calls_to("delete_message") == [("C1", "M1")]


def test_sanitize_mentions_and_censor():
    assert sanitize_mentions("@everyone <@123> <@!45> <@&6>") == (
        "@\u200beveryone <@\u200b123> <@\u200b!45> <@\u200b&6>"
    )
    assert censor("Darn it, DARN @here", ["darn"]) == "❌ it, ❌ @\u200bhere"


@pytest.mark.asyncio
async def test_word_filter_reposts_censored_copy(filter_engine, store, sink):
    await install(
        store,
        FilterRule(id="words", kind=FilterKind.BLOCKED_TEXT, texts=("heck", "darn", "absent")),
        channel_id="*",
        log_channel_id="C9",
    )
    outcome = await filter_engine.process(message_event("Heck, darn it @everyone"))

    assert outcome.deleted and outcome.notice_posted
    assert outcome.violation.detail["detectedWords"] == ["heck", "darn"]
    assert sink.calls_to("send_message") == [
        ("C1", "<@U1>, your message contained blocked words and was removed:\n\n> ❌, ❌ it @\u200beveryone")
    ]
    [(_, log_embed)] = sink.calls_to("send_embed")
    fields = {field.name: field.value for field in log_embed.fields}
    assert fields["Detected Words"] == "`heck`, `darn`"
    assert fields["Censored Version"] == "❌, ❌ it @\u200b..."


@pytest.mark.asyncio
async def test_censored_copy_is_independent_of_delete(filter_engine, store, sink):
    sink.fail("delete_message", TransientDeliveryError("gone"))
    await install(store, FilterRule(id="words", kind=FilterKind.BLOCKED_TEXT, texts=("heck",)), channel_id="*")
    outcome = await filter_engine.process(message_event("heck"))
    assert not outcome.deleted and outcome.notice_posted


@pytest.mark.asyncio
async def test_channel_filter_does_not_repost(filter_engine, store, sink):
    await install(store, FilterRule(id="f", kind=FilterKind.BLOCKED_TEXT, texts=("bad",)))
    outcome = await filter_engine.process(message_event("bad"))
    assert outcome.deleted and not outcome.notice_posted
    assert sink.calls_to("send_message") == []
