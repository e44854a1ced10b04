"""
Condition gating: role/user permissions and per-actor cooldowns.
"""

from __future__ import annotations

from autocord.database.state_store import KEEP, Family, StateStore, make_key
from autocord.datatypes.event_datatypes import Actor
from autocord.datatypes.rule_datatypes import ConditionSet
from autocord.util.logger import get_logger

logger = get_logger("condition_evaluator")


def permits(actor: Actor, conditions: ConditionSet) -> bool:
    """
    Decide whether ``actor`` may fire a rule guarded by ``conditions``.

    Checks run in a fixed order: administrators always pass, then any
    exempt role denies, then the required-role and allowed-user lists are
    applied when non-empty.
    """
    if actor.is_admin:
        return True
    if conditions.exempt_roles and actor.role_ids & conditions.exempt_roles:
        return False
    if conditions.required_roles and not actor.role_ids & conditions.required_roles:
        return False
    if conditions.allowed_users and actor.id not in conditions.allowed_users:
        return False
    return True


async def check_cooldown(
    store: StateStore,
    actor_id: str,
    rule_id: str,
    cooldown_seconds: int,
    now_ms: int,
) -> bool:
    """
    Atomically test and claim the cooldown for ``(actor_id, rule_id)``.

    Returns True and records ``now_ms`` as the last firing when the cooldown
    is zero, absent, or expired; returns False without writing otherwise.
    The check and the write happen under the key's lock, so concurrent
    callers on the same key see each other's claims.

    Raises:
        StoreUnavailableError: If the cooldown record cannot be read or written.
    """
    if cooldown_seconds <= 0:
        return True

    window_ms = cooldown_seconds * 1000
    passed = False

    def claim(last_fired_at: int | None):
        nonlocal passed
        if last_fired_at is not None and now_ms - int(last_fired_at) < window_ms:
            return KEEP
        passed = True
        return now_ms

    await store.with_lock(Family.COOLDOWNS, make_key(actor_id, rule_id), claim, scope=str(rule_id))

    if not passed:
        logger.debug("[CONDITIONS] Rule %s on cooldown for user %s", rule_id, actor_id)
    return passed
