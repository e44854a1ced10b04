"""
Action execution for a matched, permitted rule.

Actions run strictly in order. Each one is isolated: a failure is logged,
recorded in the ExecutionReport with its error kind, and the next action
still runs. Once every action has been attempted the rule's fire count is
incremented, unless the caller already claimed the use up front.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Set

from autocord.datatypes.execution_datatypes import ExecutionContext, ExecutionReport
from autocord.datatypes.rule_datatypes import (
    ActionSpec,
    DeleteMessageAction,
    EmbedField,
    ModerateAction,
    ModerateOperation,
    MutateRoleAction,
    RoleOperation,
    Rule,
    SendDirectMessageAction,
    SendEmbedAction,
    SendMessageAction,
    SetVariableAction,
    VariableScope,
)
from autocord.engine.errors import AutocordError, ConfigurationError
from autocord.engine.platform_sink import EmbedPayload, PlatformSink
from autocord.engine.template_resolver import resolve
from autocord.repositories.rules_repo import RulesRepo
from autocord.repositories.variables_repo import VariablesRepo
from autocord.util.logger import get_logger

logger = get_logger("action_executor")


def action_type(action: ActionSpec) -> str:
    return action.to_dict()["type"]


def parse_color(value: Any) -> int | None:
    """Accept ``#rrggbb``, ``0xrrggbb``, a decimal string or an int."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        if text.startswith("#"):
            return int(text[1:], 16)
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    except ValueError:
        raise ConfigurationError(f"Invalid embed color {value!r}") from None


def build_embed(action: SendEmbedAction, tree: Mapping[str, Any]) -> EmbedPayload:
    """Resolve every text part of an embed action against ``tree``."""
    return EmbedPayload(
        title=resolve(action.title, tree) or None,
        description=resolve(action.body, tree) or None,
        color=parse_color(action.color),
        fields=tuple(
            EmbedField(name=resolve(f.name, tree), value=resolve(f.value, tree), inline=f.inline)
            for f in action.fields
        ),
        footer=resolve(action.footer, tree) or None,
        thumbnail=resolve(action.thumbnail, tree) or None,
        image=resolve(action.image, tree) or None,
        timestamp=datetime.now(timezone.utc),
    )


def preview(rule: Rule, context: ExecutionContext | Mapping[str, Any]) -> str | None:
    """
    Resolve the rule's first text-bearing action without executing anything.

    ``context`` is either a real ExecutionContext or a hand-built template
    tree such as ``{"user": {"name": "Test"}}``.
    """
    tree = context.template_tree() if isinstance(context, ExecutionContext) else context
    for action in rule.actions:
        match action:
            case SendMessageAction(content=content) | SendDirectMessageAction(content=content):
                return resolve(content, tree)
            case SendEmbedAction(body=body, title=title) if body or title:
                return resolve(body or title, tree)
    return None


class ActionExecutor:
    """
    Runs rule actions against a PlatformSink.

    Args:
        sink: Where outbound platform operations go.
        variables: Variables repository for SetVariable actions.
        rules: Rules repository for fire-count updates.
        transient_delete_seconds: Lifetime of transient messages.
        default_timeout_minutes: Timeout length when an action gives none.
    """

    def __init__(
        self,
        sink: PlatformSink,
        variables: VariablesRepo,
        rules: RulesRepo,
        transient_delete_seconds: float = 10.0,
        default_timeout_minutes: int = 10,
    ) -> None:
        self.sink = sink
        self.variables = variables
        self.rules = rules
        self.transient_delete_seconds = transient_delete_seconds
        self.default_timeout_minutes = default_timeout_minutes
        self._pending_deletes: Set[asyncio.Task] = set()

    async def execute(self, rule: Rule, context: ExecutionContext, count_use: bool = True) -> ExecutionReport:
        """
        Run every action of ``rule`` in order and return the per-action report.

        ``count_use=False`` skips the fire-count update for callers that
        already took the use through ``RulesRepo.claim_use``.

        Raises:
            StoreUnavailableError: Only from the final fire-count update.
        """
        report = ExecutionReport(rule_id=rule.id)
        tree = context.template_tree()

        for index, action in enumerate(rule.actions):
            kind = action_type(action)
            try:
                detail = await self._run(rule, action, context, tree)
            except AutocordError as exc:
                logger.warning(
                    "[ACTION EXECUTOR] Rule %s action %d (%s) failed with %s error: %s",
                    rule.id, index, kind, exc.kind, exc,
                )
                report.record_failure(index, kind, exc.kind, str(exc))
            except Exception as exc:
                logger.exception("[ACTION EXECUTOR] Rule %s action %d (%s) raised unexpectedly", rule.id, index, kind)
                report.record_failure(index, kind, "unexpected", str(exc))
            else:
                report.record_success(index, kind, detail)

        if count_use:
            count = await self.rules.increment_fire_count(rule.owner_scope_id, rule.id)
            logger.debug("[ACTION EXECUTOR] Rule %s fired (%d total)", rule.id, count)
        return report

    async def _run(self, rule: Rule, action: ActionSpec, context: ExecutionContext, tree: Dict[str, Any]) -> str:
        match action:
            case SendMessageAction():
                return await self._send_message(action, context, tree)
            case SendEmbedAction():
                channel_id = await self._resolve_channel(action.target_channel, context, tree)
                message_id = await self.sink.send_embed(channel_id, build_embed(action, tree))
                return str(message_id or "")
            case MutateRoleAction():
                return await self._mutate_role(rule, action, context)
            case SetVariableAction():
                return await self._set_variable(action, context, tree)
            case ModerateAction():
                return await self._moderate(rule, action, context, tree)
            case DeleteMessageAction():
                message_id = context.event.message_id
                channel_id = context.event.channel_id
                if not message_id or not channel_id:
                    raise ConfigurationError("Event has no message to delete")
                await self.sink.delete_message(channel_id, message_id)
                return message_id
            case SendDirectMessageAction(content=content):
                await self.sink.send_direct_message(context.event.actor.id, content=resolve(content, tree))
                return context.event.actor.id
        raise ConfigurationError(f"Unsupported action {type(action).__name__}")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def _resolve_channel(self, target: str | None, context: ExecutionContext, tree: Mapping[str, Any]) -> str:
        """Target channel by id, then by name, falling back to the event's channel."""
        origin = context.event.channel_id
        if target:
            wanted = resolve(target, tree)
            channels = await self.sink.list_channels(context.event.guild_id)
            for channel in channels:
                if channel.id == wanted:
                    return channel.id
            for channel in channels:
                if channel.name == wanted:
                    return channel.id
            logger.debug("[ACTION EXECUTOR] Channel %r not found, using origin channel", wanted)
        if origin is None:
            raise ConfigurationError(f"No channel to deliver to (target {target!r})")
        return origin

    async def _send_message(self, action: SendMessageAction, context: ExecutionContext, tree: Mapping[str, Any]) -> str:
        channel_id = await self._resolve_channel(action.target_channel, context, tree)
        content = resolve(action.content, tree)
        if action.transient:
            content = f"{context.event.actor.mention}, {content}"
        message_id = await self.sink.send_message(channel_id, content)
        if action.transient and message_id:
            self._schedule_delete(channel_id, str(message_id))
        return str(message_id or "")

    def _schedule_delete(self, channel_id: str, message_id: str) -> None:
        task = asyncio.create_task(self._delete_later(channel_id, message_id))
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)

    async def _delete_later(self, channel_id: str, message_id: str) -> None:
        await asyncio.sleep(self.transient_delete_seconds)
        try:
            await self.sink.delete_message(channel_id, message_id)
        except Exception as exc:
            logger.debug("[ACTION EXECUTOR] Transient message %s already gone: %s", message_id, exc)

    async def drain(self) -> None:
        """Wait for scheduled transient-message deletions to finish."""
        if self._pending_deletes:
            await asyncio.gather(*list(self._pending_deletes), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending_deletes):
            task.cancel()

    # ------------------------------------------------------------------
    # Roles, variables, moderation
    # ------------------------------------------------------------------

    async def _mutate_role(self, rule: Rule, action: MutateRoleAction, context: ExecutionContext) -> str:
        guild_id = context.event.guild_id
        roles = await self.sink.list_roles(guild_id)
        role = next((r for r in roles if r.id == action.role), None)
        if role is None:
            # Names are matched case-sensitively
            role = next((r for r in roles if r.name == action.role), None)
        if role is None:
            raise ConfigurationError(f"Role {action.role!r} does not exist in guild {guild_id}")

        reason = f"Automation rule {rule.name or rule.id}"
        if action.operation is RoleOperation.ADD:
            await self.sink.add_role(guild_id, context.event.actor.id, role.id, reason=reason)
        else:
            await self.sink.remove_role(guild_id, context.event.actor.id, role.id, reason=reason)
        return role.id

    async def _set_variable(self, action: SetVariableAction, context: ExecutionContext, tree: Dict[str, Any]) -> str:
        value = action.value
        if isinstance(value, str):
            value = resolve(value, tree)
        scope_key = context.event.actor.id if action.scope is VariableScope.PER_USER else ""
        stored = await self.variables.set(context.event.guild_id, action.scope, scope_key, action.name, value)

        # Later actions in the same run see the new value
        bucket = "user" if action.scope is VariableScope.PER_USER else "server"
        tree["vars"][bucket][action.name] = stored
        return action.name

    async def _moderate(self, rule: Rule, action: ModerateAction, context: ExecutionContext, tree: Mapping[str, Any]) -> str:
        guild_id = context.event.guild_id
        user_id = context.event.actor.id
        reason = resolve(action.reason, tree) or f"Automation rule {rule.name or rule.id}"

        match action.operation:
            case ModerateOperation.KICK:
                await self.sink.kick(guild_id, user_id, reason=reason)
            case ModerateOperation.BAN:
                await self.sink.ban(guild_id, user_id, reason=reason)
            case ModerateOperation.TIMEOUT:
                minutes = action.duration_minutes or self.default_timeout_minutes
                await self.sink.timeout(guild_id, user_id, minutes, reason=reason)

        logger.info("[ACTION EXECUTOR] %s user %s in guild %s: %s", action.operation.value, user_id, guild_id, reason)
        return user_id
