"""
Credit gating against the external ledger.

Enforcement order:
1. check() before any provider call - a failed check declines the request
2. charge() exactly once after success, for the tier that served it

charge() re-reads the balance under a per-caller lock before debiting.
Two concurrent requests from one caller may both pass check(), but only
those the balance still covers at charge time are debited; the rest are
refused with InsufficientCredits. A balance never goes below zero.
"""

import asyncio
import weakref
from dataclasses import dataclass

from .errors import InsufficientCredits
from .interfaces import CreditLedger
from .logging import get_logger
from .tiers import DEFAULT_CREDIT_TABLE, CreditTable, Tier

logger = get_logger(__name__)


@dataclass(frozen=True)
class CreditCheck:
    """Outcome of checking a caller's balance against a tier's cost."""
    has_credits: bool
    balance: int
    required: int


class CreditGate:
    """Pay-per-tier credit enforcement."""

    def __init__(self, ledger: CreditLedger, credit_table: CreditTable = DEFAULT_CREDIT_TABLE):
        self.ledger = ledger
        self.credit_table = credit_table
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def cost_of(self, tier: Tier) -> int:
        return self.credit_table.cost_of(tier)

    def _lock_for(self, caller_id: str) -> asyncio.Lock:
        lock = self._locks.get(caller_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[caller_id] = lock
        return lock

    async def check(self, caller_id: str, tier: Tier) -> CreditCheck:
        """Check whether a caller can afford a tier.

        Args:
            caller_id: Caller to check
            tier: Tier the request would be served at

        Returns:
            CreditCheck with the current balance and the required amount
        """
        required = self.cost_of(tier)
        balance = await self.ledger.get_balance(caller_id)
        return CreditCheck(has_credits=balance >= required, balance=balance, required=required)

    async def charge(self, caller_id: str, tier: Tier) -> int:
        """Debit a caller for one request served at a tier.

        Args:
            caller_id: Caller to charge
            tier: Tier that actually served the request

        Returns:
            Balance after the debit

        Raises:
            InsufficientCredits: If the balance no longer covers the cost
        """
        cost = self.cost_of(tier)
        lock = self._lock_for(caller_id)
        async with lock:
            balance = await self.ledger.get_balance(caller_id)
            if balance < cost:
                logger.warning(
                    "credit_charge_refused",
                    caller_id=caller_id,
                    tier=tier.value,
                    required=cost,
                    available=balance,
                )
                raise InsufficientCredits(caller_id, required=cost, available=balance)
            if cost == 0:
                return balance
            new_balance = await self.ledger.decrement(caller_id, cost)

        logger.info("credits_charged", caller_id=caller_id, tier=tier.value, cost=cost, balance=new_balance)
        return new_balance

    async def balance(self, caller_id: str) -> int:
        return await self.ledger.get_balance(caller_id)

    async def add(self, caller_id: str, amount: int) -> int:
        """Top up a caller's balance.

        Raises:
            ValueError: If amount is not a positive integer
        """
        if not isinstance(amount, int) or amount <= 0:
            raise ValueError("amount must be a positive integer")
        async with self._lock_for(caller_id):
            return await self.ledger.increment(caller_id, amount)
