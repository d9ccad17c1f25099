"""
Interfaces of the external collaborators the router consumes.
"""

from typing import List, Protocol

from ai_tier_router.storage.models import UsageRecord

from .request import ConversationTurn


class GenerationProvider(Protocol):
    """Generates text for a system instruction and conversation.

    Implementations raise ProviderError (or any exception, which is
    classified by message signature) when a call fails.
    """

    async def generate(
        self,
        model: str,
        system_instruction: str,
        turns: List[ConversationTurn],
    ) -> str:
        ...


class CreditLedger(Protocol):
    """Persisted credit balance keyed by caller. Mutations are atomic per call."""

    async def get_balance(self, caller_id: str) -> int:
        ...

    async def decrement(self, caller_id: str, amount: int) -> int:
        ...

    async def increment(self, caller_id: str, amount: int) -> int:
        ...


class UsageSink(Protocol):
    """Append-only destination for usage records."""

    async def write(self, record: UsageRecord) -> None:
        ...


class ConversationStore(Protocol):
    """Prior turns of a conversation, oldest first."""

    async def load_turns(self, caller_id: str, conversation_id: str, limit: int = 10) -> List[ConversationTurn]:
        ...

    async def append_turn(self, caller_id: str, conversation_id: str, turn: ConversationTurn) -> None:
        ...
