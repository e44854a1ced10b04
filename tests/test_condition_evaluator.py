"""Tests for permission and cooldown gates."""

import asyncio

import pytest

from autocord.database.state_store import Family, make_key
from autocord.datatypes.rule_datatypes import ConditionSet
from autocord.engine.condition_evaluator import check_cooldown, permits

from fakes import make_actor


class TestPermits:
    def test_no_conditions_permits_everyone(self):
        assert permits(make_actor(), ConditionSet())

    def test_admin_bypasses_everything(self):
        conditions = ConditionSet(
            required_roles=frozenset({"R1"}),
            exempt_roles=frozenset({"R2"}),
            allowed_users=frozenset({"U9"}),
        )
        assert permits(make_actor(roles={"R2"}, admin=True), conditions)

    def test_exempt_role_denies_even_with_required_role(self):
        conditions = ConditionSet(required_roles=frozenset({"R1"}), exempt_roles=frozenset({"R2"}))
        assert not permits(make_actor(roles={"R1", "R2"}), conditions)

    def test_required_roles(self):
        conditions = ConditionSet(required_roles=frozenset({"R1", "R3"}))
        assert permits(make_actor(roles={"R3"}), conditions)
        assert not permits(make_actor(roles={"R2"}), conditions)

    def test_allowed_users(self):
        conditions = ConditionSet(allowed_users=frozenset({"U1"}))
        assert permits(make_actor("U1"), conditions)
        assert not permits(make_actor("U2"), conditions)


class TestCooldown:
    @pytest.mark.asyncio
    async def test_zero_cooldown_always_passes_without_writing(self, store):
        assert await check_cooldown(store, "U1", "r1", 0, 1_000)
        assert await check_cooldown(store, "U1", "r1", 0, 1_001)
        assert await store.get(Family.COOLDOWNS, make_key("U1", "r1")) is None

    @pytest.mark.asyncio
    async def test_boundary(self, store):
        t = 1_700_000_000_000
        assert await check_cooldown(store, "U1", "r1", 5, t)
        assert not await check_cooldown(store, "U1", "r1", 5, t + 5 * 1000 - 1)
        assert await check_cooldown(store, "U1", "r1", 5, t + 5 * 1000)

    @pytest.mark.asyncio
    async def test_denied_check_does_not_extend_cooldown(self, store):
        t = 10_000
        assert await check_cooldown(store, "U1", "r1", 5, t)
        assert not await check_cooldown(store, "U1", "r1", 5, t + 4_000)
        assert await store.get(Family.COOLDOWNS, make_key("U1", "r1")) == t

    @pytest.mark.asyncio
    async def test_cooldowns_are_per_actor_and_rule(self, store):
        assert await check_cooldown(store, "U1", "r1", 60, 1_000)
        assert await check_cooldown(store, "U2", "r1", 60, 1_000)
        assert await check_cooldown(store, "U1", "r2", 60, 1_000)
        assert not await check_cooldown(store, "U1", "r1", 60, 2_000)

    @pytest.mark.asyncio
    async def test_concurrent_checks_yield_exactly_one_success(self, store):
        results = await asyncio.gather(*(check_cooldown(store, "U1", "r1", 5, 5_000) for _ in range(100)))
        assert results.count(True) == 1
        assert results.count(False) == 99
        assert len(store.locks) == 0
