"""
Per-event pipeline orchestration.

For every inbound event: message events are first run through the content
filters; then the guild's rules are matched, gated (permissions, then
cooldown), given a fresh ExecutionContext and executed. Each rule is
processed in isolation, so one rule failing never prevents the next from
being considered. Only StoreUnavailableError reaches the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from autocord.configuration.app_configuration import POLICY_FIRE_ALL, POLICY_FIRST_MATCH, AppConfig
from autocord.database.state_store import StateStore
from autocord.datatypes.event_datatypes import EventKind, InboundEvent
from autocord.datatypes.execution_datatypes import ExecutionContext, ExecutionReport
from autocord.datatypes.rule_datatypes import Rule
from autocord.engine.action_executor import ActionExecutor
from autocord.engine.condition_evaluator import check_cooldown, permits
from autocord.engine.content_filter import ContentFilterEngine, FilterOutcome
from autocord.engine.errors import ConfigurationError, StoreUnavailableError
from autocord.engine.platform_sink import PlatformSink
from autocord.engine.trigger_matcher import TriggerMatcher
from autocord.repositories.filter_repo import FilterRepo
from autocord.repositories.rules_repo import RulesRepo
from autocord.repositories.variables_repo import VariablesRepo
from autocord.util.logger import get_logger

logger = get_logger("rule_engine")

SKIP_CONDITIONS = "conditions"
SKIP_COOLDOWN = "cooldown"
SKIP_ERROR = "error"
SKIP_MAX_USES = "max_uses"


@dataclass(slots=True)
class EventOutcome:
    """Summary of everything one inbound event caused."""

    filter_outcome: FilterOutcome | None = None
    matched: List[str] = field(default_factory=list)
    reports: List[ExecutionReport] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    configuration_errors: List[tuple[str, ConfigurationError]] = field(default_factory=list)

    @property
    def fired(self) -> List[str]:
        return [report.rule_id for report in self.reports]


class RuleEngine:
    """
    Wires the matcher, condition gates, executor and content filters together.

    Args:
        store: Opened state store.
        sink: Outbound platform adapter.
        policy: ``fire_all`` runs every matching rule; ``first_match`` stops
            after the first rule that actually fires.
    """

    def __init__(
        self,
        store: StateStore,
        sink: PlatformSink,
        policy: str = POLICY_FIRE_ALL,
        transient_delete_seconds: float = 10.0,
        default_timeout_minutes: int = 10,
        filter_log_truncate: int = 1000,
    ) -> None:
        if policy not in (POLICY_FIRE_ALL, POLICY_FIRST_MATCH):
            raise ConfigurationError(f"Unknown automation policy {policy!r}")
        self.store = store
        self.sink = sink
        self.policy = policy

        self.rules = RulesRepo(store)
        self.variables = VariablesRepo(store)
        self.filters = FilterRepo(store)

        self.matcher = TriggerMatcher()
        self.executor = ActionExecutor(
            sink,
            self.variables,
            self.rules,
            transient_delete_seconds=transient_delete_seconds,
            default_timeout_minutes=default_timeout_minutes,
        )
        self.content_filter = ContentFilterEngine(store, self.filters, sink, log_truncate=filter_log_truncate)

    @classmethod
    def from_config(cls, store: StateStore, sink: PlatformSink, config: AppConfig) -> "RuleEngine":
        return cls(
            store,
            sink,
            policy=config.automation_policy,
            transient_delete_seconds=config.transient_delete_seconds,
            default_timeout_minutes=config.default_timeout_minutes,
            filter_log_truncate=config.filter_log_truncate,
        )

    async def handle_event(self, event: InboundEvent) -> EventOutcome:
        """
        Run the full pipeline for one event.

        A message removed by a content filter is not offered to automation
        rules.

        Raises:
            StoreUnavailableError: If the store fails while loading rules or
                filters, or while claiming a cooldown or a use for a rule.
        """
        outcome = EventOutcome()

        if event.kind is EventKind.MESSAGE:
            outcome.filter_outcome = await self.content_filter.process(event)
            if outcome.filter_outcome is not None:
                return outcome

        rules = await self.rules.list(event.guild_id)
        if not rules:
            return outcome

        fire_counts = {
            rule.id: await self.rules.fire_count(event.guild_id, rule.id)
            for rule in rules
            if rule.max_uses > 0
        }
        result = self.matcher.match(event, rules, fire_counts)
        outcome.configuration_errors.extend(result.errors)
        outcome.matched.extend(rule.id for rule in result.rules)

        for rule in result.rules:
            try:
                report = await self._fire(rule, event, outcome)
            except StoreUnavailableError:
                raise
            except Exception:
                logger.exception("[RULE ENGINE] Rule %s failed in guild %s", rule.id, event.guild_id)
                outcome.skipped[rule.id] = SKIP_ERROR
                continue

            if report is None:
                continue
            outcome.reports.append(report)
            if self.policy == POLICY_FIRST_MATCH:
                break

        if outcome.reports:
            logger.debug(
                "[RULE ENGINE] %s event in guild %s fired %s",
                event.kind.value, event.guild_id, ", ".join(outcome.fired),
            )
        return outcome

    async def _fire(self, rule: Rule, event: InboundEvent, outcome: EventOutcome) -> ExecutionReport | None:
        if not permits(event.actor, rule.conditions):
            outcome.skipped[rule.id] = SKIP_CONDITIONS
            return None

        context = ExecutionContext(
            event=event,
            user_variables=await self.variables.user_variables(event.guild_id, event.actor.id),
            server_variables=await self.variables.server_variables(event.guild_id),
        )

        if not await check_cooldown(self.store, event.actor.id, rule.id, rule.cooldown_seconds, context.now_ms):
            outcome.skipped[rule.id] = SKIP_COOLDOWN
            return None

        limited = rule.max_uses > 0
        if limited and not await self.rules.claim_use(rule.owner_scope_id, rule.id, rule.max_uses):
            outcome.skipped[rule.id] = SKIP_MAX_USES
            return None

        report = await self.executor.execute(rule, context, count_use=not limited)
        if not report.succeeded:
            logger.info("[RULE ENGINE] Rule %s finished with failed actions %s", rule.id, report.failed_indices)
        return report

    async def shutdown(self) -> None:
        self.executor.cancel_pending()
