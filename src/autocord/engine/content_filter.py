"""
Moderation-style content filters.

For each applicable filter (the channel's own, then the guild-wide one) the
rules are checked in order and the first violation wins. The offending
message is deleted first; the violation record, the censored repost (guild-wide
word filter only), the DM notice and the log channel post are attempted
afterwards, each independently of the others.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from autocord.database.state_store import StateStore
from autocord.datatypes.event_datatypes import InboundEvent, MessagePayload
from autocord.datatypes.filter_datatypes import (
    GUILD_WIDE,
    ContentFilter,
    FilterKind,
    FilterResponse,
    FilterRule,
    Violation,
    ViolationRecord,
)
from autocord.datatypes.rule_datatypes import EmbedField
from autocord.engine.errors import AutocordError, StoreUnavailableError
from autocord.engine.platform_sink import EmbedPayload, PlatformSink
from autocord.repositories.filter_repo import FilterRepo
from autocord.util.logger import get_logger

logger = get_logger("content_filter")

AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "flac", "aac", "ogg", "m4a", "wma"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg"})
VIDEO_EXTENSIONS = frozenset({"mp4", "avi", "mov", "wmv", "flv", "webm", "mkv"})

DEFAULT_MAX_LENGTH = 2000
DEFAULT_MAX_FILE_SIZE = 8 * 1024 * 1024
VIOLATION_COLOR = 0xFF6B6B
CENSOR_MARK = "❌"
ZERO_WIDTH_SPACE = "\u200b"

MENTION_PATTERN = re.compile(r"@(everyone|here)|<@[!&]?\d+>", re.IGNORECASE)

RESPONSE_DISPLAY = {
    FilterResponse.DELETE: "Delete Message",
    FilterResponse.DELETE_AND_DM: "Delete Message & Send DM",
}


def format_file_size(size: int) -> str:
    """Human-readable size: ``2.0 MB``."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def sanitize_mentions(content: str) -> str:
    """Break @everyone, @here, user and role mentions so reposting them pings nobody."""
    return MENTION_PATTERN.sub(lambda m: m.group(0).replace("@", "@" + ZERO_WIDTH_SPACE, 1), content)


def censor(content: str, words) -> str:
    """Mention-safe copy of ``content`` with every blocked word masked, case-insensitively."""
    censored = sanitize_mentions(content)
    for word in words:
        if word:
            censored = re.sub(re.escape(word), CENSOR_MARK, censored, flags=re.IGNORECASE)
    return censored


def _missing_attachment(payload: MessagePayload, extensions: frozenset[str]) -> bool:
    return not any(a.extension in extensions for a in payload.attachments)


def check_rule(rule: FilterRule, payload: MessagePayload) -> Violation | None:
    """Return the violation ``payload`` commits against ``rule``, or None."""
    content = payload.content
    lowered = content.lower()
    custom = rule.custom_message

    match rule.kind:
        case FilterKind.MUST_CONTAIN_AUDIO:
            if _missing_attachment(payload, AUDIO_EXTENSIONS):
                return Violation("missing_audio", custom or "Your message must contain an audio file.")
        case FilterKind.MUST_CONTAIN_IMAGE:
            if _missing_attachment(payload, IMAGE_EXTENSIONS):
                return Violation("missing_image", custom or "Your message must contain an image.")
        case FilterKind.MUST_CONTAIN_VIDEO:
            if _missing_attachment(payload, VIDEO_EXTENSIONS):
                return Violation("missing_video", custom or "Your message must contain a video file.")
        case FilterKind.MUST_CONTAIN_FILE:
            if not payload.attachments:
                return Violation("missing_file", custom or "Your message must contain a file attachment.")
        case FilterKind.BLOCKED_DOMAINS:
            for domain in rule.domains:
                if domain and domain.lower() in lowered:
                    return Violation(
                        "blocked_domain",
                        custom or f"Links to {domain} are not allowed in this channel.",
                        {"domain": domain},
                    )
        case FilterKind.REQUIRED_TEXT:
            for text in rule.texts:
                if text.lower() not in lowered:
                    return Violation(
                        "missing_required_text",
                        custom or f'Your message must contain: "{text}"',
                        {"requiredText": text},
                    )
        case FilterKind.BLOCKED_TEXT:
            hits = [text for text in rule.texts if text and text.lower() in lowered]
            if hits:
                return Violation(
                    "blocked_text",
                    custom or f'Your message contains blocked content: "{hits[0]}"',
                    {"blockedText": hits[0], "detectedWords": hits},
                )
        case FilterKind.MIN_LENGTH:
            minimum = rule.length or 0
            if len(content) < minimum:
                return Violation(
                    "too_short",
                    custom or f"Your message must be at least {minimum} characters long.",
                    {"currentLength": len(content), "requiredLength": minimum},
                )
        case FilterKind.MAX_LENGTH:
            maximum = rule.length or DEFAULT_MAX_LENGTH
            if len(content) > maximum:
                return Violation(
                    "too_long",
                    custom or f"Your message must be no more than {maximum} characters long.",
                    {"currentLength": len(content), "maxLength": maximum},
                )
        case FilterKind.BLOCK_LARGE_FILES:
            limit = rule.max_size_bytes or DEFAULT_MAX_FILE_SIZE
            for attachment in payload.attachments:
                if attachment.size > limit:
                    return Violation(
                        "file_too_large",
                        custom or f"Files larger than {format_file_size(limit)} are not allowed in this channel.",
                        {"fileSize": attachment.size, "maxSize": limit, "fileName": attachment.filename},
                    )
    return None


@dataclass(slots=True)
class FilterOutcome:
    """What happened when a message broke a filter rule."""

    content_filter: ContentFilter
    rule: FilterRule
    violation: Violation
    deleted: bool = False
    recorded: bool = False
    notice_posted: bool = False
    dm_sent: bool = False
    logged: bool = False


class ContentFilterEngine:
    """Applies a guild's content filters to posted messages."""

    def __init__(self, store: StateStore, filters: FilterRepo, sink: PlatformSink, log_truncate: int = 1000) -> None:
        self.store = store
        self.filters = filters
        self.sink = sink
        self.log_truncate = log_truncate

    async def process(self, event: InboundEvent) -> FilterOutcome | None:
        """
        Check a message event against every applicable filter.

        Returns:
            The outcome for the first violation found, or None for a clean message.

        Raises:
            StoreUnavailableError: If filters cannot be loaded, or the violation
                could not be recorded. In the latter case the delete, DM and
                log post have already been attempted.
        """
        payload = event.payload
        if not isinstance(payload, MessagePayload):
            return None

        for content_filter in await self.filters.applicable(event.guild_id, event.channel_id):
            for rule in content_filter.rules:
                violation = check_rule(rule, payload)
                if violation is not None:
                    return await self._handle_violation(event, payload, content_filter, rule, violation)
        return None

    async def _handle_violation(
        self,
        event: InboundEvent,
        payload: MessagePayload,
        content_filter: ContentFilter,
        rule: FilterRule,
        violation: Violation,
    ) -> FilterOutcome:
        outcome = FilterOutcome(content_filter=content_filter, rule=rule, violation=violation)

        if event.channel_id and payload.message_id:
            try:
                await self.sink.delete_message(event.channel_id, payload.message_id)
                outcome.deleted = True
            except AutocordError as exc:
                logger.warning("[CONTENT FILTER] Could not delete message %s: %s", payload.message_id, exc)

        store_error: StoreUnavailableError | None = None
        record = ViolationRecord(
            guild_id=event.guild_id,
            rule_id=rule.id,
            actor_id=event.actor.id,
            timestamp_ms=int(datetime.now(timezone.utc).timestamp() * 1000),
            rule_kind=rule.kind.value,
            detail={"violation": violation.kind, **violation.detail},
            channel_id=event.channel_id,
            message_id=payload.message_id,
        )
        try:
            await self.store.append_violation(record)
            outcome.recorded = True
        except StoreUnavailableError as exc:
            logger.error("[CONTENT FILTER] Could not record violation by %s: %s", event.actor.id, exc)
            store_error = exc

        if content_filter.channel_id == GUILD_WIDE and violation.kind == "blocked_text" and event.channel_id:
            try:
                await self.sink.send_message(event.channel_id, self._censored_notice(event, payload, violation))
                outcome.notice_posted = True
            except AutocordError as exc:
                logger.warning("[CONTENT FILTER] Could not post censored notice in %s: %s", event.channel_id, exc)

        if rule.response is FilterResponse.DELETE_AND_DM:
            try:
                await self.sink.send_direct_message(event.actor.id, embed=self._notice_embed(event, payload, rule, violation))
                outcome.dm_sent = True
            except AutocordError as exc:
                logger.info("[CONTENT FILTER] Could not DM %s: %s", event.actor.id, exc)

        if content_filter.log_channel_id:
            try:
                await self.sink.send_embed(
                    content_filter.log_channel_id,
                    self._log_embed(event, payload, rule, violation),
                )
                outcome.logged = True
            except AutocordError as exc:
                logger.warning("[CONTENT FILTER] Could not post to log channel %s: %s", content_filter.log_channel_id, exc)

        logger.info(
            "[CONTENT FILTER] Rule violation in guild %s channel %s by %s: %s",
            event.guild_id, event.channel_id, event.actor.id, violation.kind,
        )

        if store_error is not None:
            raise store_error
        return outcome

    # ------------------------------------------------------------------
    # Embeds
    # ------------------------------------------------------------------

    def _excerpt(self, content: str) -> str:
        if not content:
            return "*No text content*"
        if len(content) > self.log_truncate:
            return content[: self.log_truncate] + "..."
        return content

    @staticmethod
    def _censored_notice(event: InboundEvent, payload: MessagePayload, violation: Violation) -> str:
        censored = censor(payload.content, violation.detail["detectedWords"])
        return f"{event.actor.mention}, your message contained blocked words and was removed:\n\n> {censored}"

    def _notice_embed(
        self, event: InboundEvent, payload: MessagePayload, rule: FilterRule, violation: Violation
    ) -> EmbedPayload:
        channel_name = event.channel.name if event.channel else ""
        return EmbedPayload(
            title="🚫 Message Removed",
            description=violation.message,
            color=VIOLATION_COLOR,
            fields=(
                EmbedField("Channel", f"#{channel_name}", True),
                EmbedField("Server", event.guild.name, True),
                EmbedField("Rule Type", rule.kind.display, True),
                EmbedField("Your Message", self._excerpt(payload.content), False),
            ),
            footer="Please review the channel rules and try again.",
            timestamp=datetime.now(timezone.utc),
        )

    def _log_embed(
        self, event: InboundEvent, payload: MessagePayload, rule: FilterRule, violation: Violation
    ) -> EmbedPayload:
        actor = event.actor
        fields = [
            EmbedField("User", f"{actor.mention} ({actor.name})", True),
            EmbedField("Channel", event.channel.mention if event.channel else "unknown", True),
            EmbedField("Rule Type", rule.kind.display, True),
            EmbedField("Violation", violation.kind.replace("_", " ").title(), True),
            EmbedField("Action Taken", RESPONSE_DISPLAY[rule.response], True),
            EmbedField("Message Content", self._excerpt(payload.content), False),
        ]
        if payload.attachments:
            fields.append(
                EmbedField(
                    "Attachments",
                    "\n".join(f"{a.filename} ({format_file_size(a.size)})" for a in payload.attachments),
                    False,
                )
            )
        detail: Dict[str, Any] = violation.detail
        if "domain" in detail:
            fields.append(EmbedField("Blocked Domain", detail["domain"], True))
        if "blockedText" in detail:
            fields.append(EmbedField("Blocked Text", f'"{detail["blockedText"]}"', True))
        if "detectedWords" in detail:
            words = detail["detectedWords"]
            fields.append(EmbedField("Detected Words", ", ".join(f"`{w}`" for w in words), False))
            fields.append(EmbedField("Censored Version", self._excerpt(censor(payload.content, words)), False))
        if "requiredText" in detail:
            fields.append(EmbedField("Missing Required Text", f'"{detail["requiredText"]}"', True))
        if "fileSize" in detail:
            fields.append(
                EmbedField("File Size", f"{format_file_size(detail['fileSize'])} (limit {format_file_size(detail['maxSize'])})", True)
            )

        return EmbedPayload(
            title="🚫 Rule Violation",
            color=VIOLATION_COLOR,
            fields=tuple(fields),
            footer=f"Message ID: {payload.message_id} • User ID: {actor.id}",
            timestamp=datetime.now(timezone.utc),
        )
