"""
Shared fakes for router tests.

The provider, ledger and sink fakes stand in for the external collaborators;
clocks and sleeps are injected so no test waits on wall time.
"""

from typing import Dict, List, Optional, Union

import pytest

from ai_tier_router.core.credits import CreditGate
from ai_tier_router.core.execution import ExecutionEngine
from ai_tier_router.core.rate_limiter import RateLimiter
from ai_tier_router.core.request import ConversationTurn
from ai_tier_router.core.retry import RetryPolicy
from ai_tier_router.core.usage import UsageRecorder
from ai_tier_router.storage.models import UsageRecord

Outcome = Union[str, Exception]


class FakeProvider:
    """Generation provider returning scripted outcomes per model.

    Each model has a queue of outcomes consumed in call order; a string is
    returned and an exception is raised. Once a queue is empty the default
    response is returned.
    """

    def __init__(self, script: Optional[Dict[str, List[Outcome]]] = None, default: str = "ok"):
        self.script = {model: list(outcomes) for model, outcomes in (script or {}).items()}
        self.default = default
        self.calls: List[dict] = []

    async def generate(self, model: str, system_instruction: str, turns: List[ConversationTurn]) -> str:
        self.calls.append({"model": model, "instruction": system_instruction, "turns": list(turns)})
        queue = self.script.get(model)
        outcome = queue.pop(0) if queue else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def calls_to(self, model: str) -> int:
        return sum(1 for call in self.calls if call["model"] == model)


class InMemoryLedger:
    """Credit ledger backed by a dict."""

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self.balances = dict(balances or {})
        self.decrements: List[tuple] = []

    async def get_balance(self, caller_id: str) -> int:
        return self.balances.get(caller_id, 0)

    async def decrement(self, caller_id: str, amount: int) -> int:
        balance = self.balances.get(caller_id, 0)
        if balance < amount:
            raise RuntimeError("overdraw")
        self.balances[caller_id] = balance - amount
        self.decrements.append((caller_id, amount))
        return self.balances[caller_id]

    async def increment(self, caller_id: str, amount: int) -> int:
        self.balances[caller_id] = self.balances.get(caller_id, 0) + amount
        return self.balances[caller_id]


class RecordingSink:
    """Usage sink keeping records in memory."""

    def __init__(self, fail: bool = False):
        self.records: List[UsageRecord] = []
        self.fail = fail

    async def write(self, record: UsageRecord) -> None:
        if self.fail:
            raise RuntimeError("sink unavailable")
        self.records.append(record)


class InMemoryConversationStore:
    """Conversation store keyed by (caller, conversation)."""

    def __init__(self):
        self.turns: Dict[tuple, List[ConversationTurn]] = {}

    async def load_turns(self, caller_id: str, conversation_id: str, limit: int = 10) -> List[ConversationTurn]:
        return list(self.turns.get((caller_id, conversation_id), [])[-limit:])

    async def append_turn(self, caller_id: str, conversation_id: str, turn: ConversationTurn) -> None:
        self.turns.setdefault((caller_id, conversation_id), []).append(turn)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, amount: float) -> None:
        self.now += amount


class RecordingSleep:
    """Sleep that returns immediately and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def ledger():
    return InMemoryLedger({"alice": 100})


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_engine(provider, ledger, sink, sleep):
    """Build an ExecutionEngine over the shared fakes; keyword overrides pass through."""

    def _make(**overrides) -> ExecutionEngine:
        options = {
            "provider": provider,
            "credit_gate": CreditGate(ledger),
            "usage_recorder": UsageRecorder(sink),
            "rate_limiter": RateLimiter(clock=FakeClock()),
            "retry_policy": RetryPolicy(),
            "sleep": sleep,
        }
        options.update(overrides)
        return ExecutionEngine(**options)

    return _make
