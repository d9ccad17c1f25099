"""
OpenAI-backed generation provider.

Maps the router's conversation turns onto chat completion messages and
translates OpenAI failures into typed provider errors.
"""

from typing import Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ..config.loader import RouterConfig, load_router_config
from ..core.context_cache import ContextCache
from ..core.credits import CreditGate
from ..core.departments import DEFAULT_DEPARTMENT_ALIASES, DEFAULT_DEPARTMENT_PROMPTS, DepartmentPromptLookup
from ..core.errors import ProviderError, ProviderErrorKind
from ..core.execution import ExecutionEngine
from ..core.prompts import PromptAssembler
from ..core.rate_limiter import RateLimiter
from ..core.request import ConversationTurn, TurnRole
from ..core.usage import UsageRecorder
from ..storage.db import DEFAULT_DB_PATH, initialize_schema
from ..storage.repository import SqliteConversationStore, SqliteCreditLedger, SqliteUsageSink

_ROLES = {
    TurnRole.CALLER: "user",
    TurnRole.MODEL: "assistant",
}


def to_messages(system_instruction: str, turns: List[ConversationTurn]) -> List[Dict[str, str]]:
    """Build chat completion messages: the system instruction, then each turn in order."""
    messages = [{"role": "system", "content": system_instruction}]
    messages.extend({"role": _ROLES[turn.role], "content": turn.text} for turn in turns)
    return messages


def classify_openai_error(error: Exception) -> ProviderError:
    """Translate an OpenAI exception into a ProviderError.

    Authentication and permission failures are permission errors; a rate
    limit caused by an exhausted quota is a quota error. Everything else,
    including plain rate limiting and connection failures, is transient.
    """
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderError(str(error), ProviderErrorKind.PERMISSION)
    if isinstance(error, openai.RateLimitError) and getattr(error, "code", None) == "insufficient_quota":
        return ProviderError(str(error), ProviderErrorKind.QUOTA)
    return ProviderError(str(error), ProviderErrorKind.TRANSIENT)


class OpenAIProvider:
    """Generation provider calling OpenAI chat completions.

    All failures are raised as ProviderError so the router can decide
    whether to retry.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        """Initialize the provider.

        Args:
            client: OpenAI async client (defaults to one configured from the environment)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
        """
        self.client = client or AsyncOpenAI()
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(
        self,
        model: str,
        system_instruction: str,
        turns: List[ConversationTurn],
    ) -> str:
        """Create a chat completion and return its text.

        Raises:
            ValueError: If model is empty
            ProviderError: If the OpenAI call fails or returns no content
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        kwargs = {}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=to_messages(system_instruction, turns),
                **kwargs
            )
        except openai.OpenAIError as e:
            raise classify_openai_error(e) from e

        if not response.choices or response.choices[0].message.content is None:
            raise ProviderError(f"{model} returned no content", ProviderErrorKind.TRANSIENT)
        return response.choices[0].message.content


def build_router(
    config_path: Optional[str] = None,
    db_path: str = DEFAULT_DB_PATH,
    provider=None,
) -> ExecutionEngine:
    """Wire an ExecutionEngine from a config file and a SQLite database.

    Args:
        config_path: Path to YAML config (defaults to the reference configuration)
        db_path: Database file path holding credits, usage and conversations
        provider: Generation provider (defaults to OpenAIProvider)

    Returns:
        ExecutionEngine ready to use as an async context manager
    """
    config = load_router_config(config_path) if config_path else RouterConfig.default()
    initialize_schema(db_path)

    departments = DepartmentPromptLookup(
        prompts={**DEFAULT_DEPARTMENT_PROMPTS, **config.departments.prompts},
        aliases={**DEFAULT_DEPARTMENT_ALIASES, **config.departments.aliases},
    )

    return ExecutionEngine(
        provider=provider or OpenAIProvider(),
        credit_gate=CreditGate(SqliteCreditLedger(db_path), config.credits),
        usage_recorder=UsageRecorder(SqliteUsageSink(db_path)),
        rate_limiter=RateLimiter(
            window_ms=config.rate_limit.window_ms,
            max_requests=config.rate_limit.max_requests,
            sweep_interval_ms=config.rate_limit.sweep_interval_ms,
        ),
        assembler=PromptAssembler(departments),
        cache=ContextCache(ttl_ms=config.cache.ttl_ms),
        conversation_store=SqliteConversationStore(db_path),
        models=config.models,
        retry_policy=config.retry,
        escalation_threshold=config.escalation.confidence_threshold,
        provider_timeout_ms=config.timeouts.provider_timeout_ms,
        request_timeout_ms=config.timeouts.request_timeout_ms,
    )
