"""
Unit tests for credit gating.
"""

import asyncio

import pytest

from conftest import InMemoryLedger

from ai_tier_router.core.credits import CreditGate
from ai_tier_router.core.errors import InsufficientCredits
from ai_tier_router.core.tiers import DEFAULT_CREDIT_TABLE, CreditTable, Tier


class TestCreditTable:
    """Test tier pricing."""

    def test_default_costs(self):
        assert DEFAULT_CREDIT_TABLE.cost_of(Tier.CLEANER) == 1
        assert DEFAULT_CREDIT_TABLE.cost_of(Tier.WORKER) == 1
        assert DEFAULT_CREDIT_TABLE.cost_of(Tier.THINKER) == 5

    def test_missing_tier_rejected(self):
        with pytest.raises(ValueError, match="Missing credit cost"):
            CreditTable({Tier.WORKER: 1})

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            CreditTable({Tier.CLEANER: 1, Tier.WORKER: -1, Tier.THINKER: 5})


class TestCreditGate:
    """Test check, charge and top-up."""

    def setup_method(self):
        self.ledger = InMemoryLedger({"alice": 5, "bob": 3})
        self.gate = CreditGate(self.ledger)

    @pytest.mark.asyncio
    async def test_check_with_enough_credits(self):
        check = await self.gate.check("alice", Tier.THINKER)

        assert check.has_credits is True
        assert check.balance == 5
        assert check.required == 5

    @pytest.mark.asyncio
    async def test_check_with_too_few_credits(self):
        check = await self.gate.check("bob", Tier.THINKER)

        assert check.has_credits is False
        assert check.balance == 3
        assert check.required == 5

    @pytest.mark.asyncio
    async def test_unknown_caller_has_zero_balance(self):
        check = await self.gate.check("carol", Tier.WORKER)

        assert check.has_credits is False
        assert check.balance == 0

    @pytest.mark.asyncio
    async def test_check_does_not_mutate(self):
        await self.gate.check("alice", Tier.THINKER)

        assert self.ledger.balances["alice"] == 5
        assert self.ledger.decrements == []

    @pytest.mark.asyncio
    async def test_charge_debits_tier_cost(self):
        balance = await self.gate.charge("alice", Tier.THINKER)

        assert balance == 0
        assert self.ledger.decrements == [("alice", 5)]

    @pytest.mark.asyncio
    async def test_charge_refused_when_balance_short(self):
        with pytest.raises(InsufficientCredits) as exc_info:
            await self.gate.charge("bob", Tier.THINKER)

        assert exc_info.value.required == 5
        assert exc_info.value.available == 3
        assert str(exc_info.value) == "Insufficient credits. Required: 5, Available: 3"
        assert self.ledger.balances["bob"] == 3

    @pytest.mark.asyncio
    async def test_zero_cost_tier_skips_decrement(self):
        gate = CreditGate(self.ledger, CreditTable({Tier.CLEANER: 0, Tier.WORKER: 1, Tier.THINKER: 5}))

        balance = await gate.charge("alice", Tier.CLEANER)

        assert balance == 5
        assert self.ledger.decrements == []

    @pytest.mark.asyncio
    async def test_concurrent_charges_never_overdraw(self):
        """Both requests pass check(), but only one can still be charged."""
        checks = await asyncio.gather(
            self.gate.check("alice", Tier.THINKER),
            self.gate.check("alice", Tier.THINKER),
        )
        assert all(check.has_credits for check in checks)

        results = await asyncio.gather(
            self.gate.charge("alice", Tier.THINKER),
            self.gate.charge("alice", Tier.THINKER),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, InsufficientCredits)) == 1
        assert self.ledger.balances["alice"] == 0

    @pytest.mark.asyncio
    async def test_balance_and_add(self):
        assert await self.gate.balance("carol") == 0

        assert await self.gate.add("carol", 7) == 7
        assert await self.gate.balance("carol") == 7

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -3, 1.5])
    async def test_add_rejects_non_positive_amounts(self, amount):
        with pytest.raises(ValueError, match="positive integer"):
            await self.gate.add("alice", amount)
