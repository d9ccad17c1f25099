"""
Request execution state machine.

SELECTING_TIER -> ADMISSION_CHECK -> CREDIT_CHECK -> CALLING_PRIMARY
    -> SUCCESS
    -> ESCALATING -> CALLING_THINKER -> SUCCESS
    -> FALLBACK_MODEL -> SUCCESS | FAIL
    -> FAIL

A request is charged once, for the tier that produced the returned content.
Escalation is one-way (worker -> thinker) and performs exactly one
secondary call; if it cannot run or fails, the worker answer is kept.
Every terminal outcome is recorded exactly once.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import tasks
from .complexity import ComplexityAnalyzer, ComplexityScore
from .context_cache import ContextCache, cache_key
from .credits import CreditGate
from .errors import (
    AdmissionDenied,
    InsufficientCredits,
    ProviderError,
    ProviderErrorKind,
    ProviderNonRetryable,
    RouterError,
    TotalFailure,
    classify_provider_error,
)
from .interfaces import ConversationStore, GenerationProvider
from .logging import bind_request_context, clear_request_context, get_logger
from .prompts import PromptAssembler
from .rate_limiter import RateLimiter
from .request import Context, ConversationTurn, ExecutionResult, FileUploadDescriptor, Request, TurnRole
from .retry import RetryPolicy, Sleep, call_with_retry
from .tier_selector import TierSelector
from .tiers import RequestKind, Tier
from .usage import UsageRecorder

logger = get_logger(__name__)

HISTORY_LIMIT = 10


class ExecutionState(Enum):
    """States a request passes through."""
    SELECTING_TIER = "selecting_tier"
    ADMISSION_CHECK = "admission_check"
    CREDIT_CHECK = "credit_check"
    CALLING_PRIMARY = "calling_primary"
    FALLBACK_MODEL = "fallback_model"
    ESCALATING = "escalating"
    CALLING_THINKER = "calling_thinker"
    SUCCESS = "success"
    FAIL = "fail"


@dataclass(frozen=True)
class ModelPair:
    """Primary and fallback model identities for one tier."""
    primary: str
    fallback: str


DEFAULT_MODELS: Dict[Tier, ModelPair] = {
    Tier.CLEANER: ModelPair(primary="gpt-4o-mini", fallback="gpt-3.5-turbo"),
    Tier.WORKER: ModelPair(primary="gpt-4o-mini", fallback="gpt-3.5-turbo"),
    Tier.THINKER: ModelPair(primary="gpt-4o", fallback="gpt-4o-mini"),
}

ESCALATION_MARKERS = tuple(
    re.compile(source, re.IGNORECASE)
    for source in (
        r"i(?:'m| am) not sure",
        r"i cannot determine",
        r"insufficient.*data",
        r"need more.*context",
        r"too complex",
    )
)


def has_low_confidence_marker(text: str) -> bool:
    """True if a response reads as uncertain enough to escalate."""
    return any(marker.search(text) for marker in ESCALATION_MARKERS)


@dataclass
class _Served:
    tier: Tier
    model: str
    content: str


@dataclass
class _Run:
    request: Request
    started_at: float
    path: List[ExecutionState] = field(default_factory=list)
    analysis: Optional[ComplexityScore] = None
    tier: Tier = Tier.WORKER


class ExecutionEngine:
    """Routes requests to a tier and executes them against the provider."""

    def __init__(
        self,
        provider: GenerationProvider,
        credit_gate: CreditGate,
        usage_recorder: UsageRecorder,
        rate_limiter: Optional[RateLimiter] = None,
        analyzer: Optional[ComplexityAnalyzer] = None,
        assembler: Optional[PromptAssembler] = None,
        cache: Optional[ContextCache] = None,
        conversation_store: Optional[ConversationStore] = None,
        models: Optional[Dict[Tier, ModelPair]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        escalation_threshold: float = 0.6,
        provider_timeout_ms: Optional[int] = None,
        request_timeout_ms: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.credit_gate = credit_gate
        self.usage = usage_recorder
        self.rate_limiter = rate_limiter or RateLimiter()
        self.analyzer = analyzer or ComplexityAnalyzer()
        self.selector = TierSelector(self.analyzer)
        self.assembler = assembler or PromptAssembler()
        self.cache = cache
        self.conversation_store = conversation_store
        self.models = models or DEFAULT_MODELS
        self.retry_policy = retry_policy or RetryPolicy()
        self.escalation_threshold = escalation_threshold
        self.provider_timeout_ms = provider_timeout_ms
        self.request_timeout_ms = request_timeout_ms
        self._sleep = sleep
        self._clock = clock

    async def __aenter__(self) -> "ExecutionEngine":
        self.rate_limiter.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop the rate-limit sweep and wait for pending usage writes."""
        await self.rate_limiter.stop()
        await self.usage.drain()

    async def execute(self, request: Request) -> ExecutionResult:
        """Route and execute one request to a terminal result.

        Admission, credit and provider failures are returned as unsuccessful
        results, never raised.

        Args:
            request: Request to serve

        Returns:
            ExecutionResult for the request
        """
        bind_request_context(request.caller_id)
        try:
            return await self._execute(_Run(request=request, started_at=self._clock()))
        finally:
            clear_request_context()

    async def analyze_deep(self, caller_id: str, prompt: str, context: Optional[Context] = None) -> ExecutionResult:
        """Serve a prompt as a deep analysis at the thinker tier."""
        return await self.execute(Request(
            prompt=prompt,
            caller_id=caller_id,
            context=context,
            force_high_tier=True,
            request_kind=RequestKind.ANALYSIS,
        ))

    async def process_file_upload(self, caller_id: str, upload: FileUploadDescriptor) -> ExecutionResult:
        """Normalize an uploaded file's structure at the cleaner tier."""
        return await self.execute(Request(
            prompt=tasks.upload_prompt(upload),
            caller_id=caller_id,
            request_kind=RequestKind.UPLOAD,
            file_upload=upload,
        ))

    async def generate_chart(
        self,
        caller_id: str,
        prompt: str,
        data: Sequence[Dict[str, Any]],
        deep_mode: bool = False,
        context: Optional[Context] = None,
    ) -> ExecutionResult:
        """Generate a chart configuration; deep_mode forces the thinker tier."""
        return await self.execute(Request(
            prompt=tasks.chart_prompt(prompt, data, deep_mode),
            caller_id=caller_id,
            request_kind=RequestKind.CHART,
            context=context,
            force_high_tier=deep_mode,
        ))

    async def generate_table(
        self,
        caller_id: str,
        prompt: str,
        source_data: Sequence[Dict[str, Any]],
        deep_mode: bool = False,
        context: Optional[Context] = None,
    ) -> ExecutionResult:
        """Generate a shaped table; deep_mode forces the thinker tier."""
        return await self.execute(Request(
            prompt=tasks.table_prompt(prompt, source_data),
            caller_id=caller_id,
            request_kind=RequestKind.TABLE,
            context=context,
            force_high_tier=deep_mode,
        ))

    async def generate_forecast(
        self,
        caller_id: str,
        prompt: str,
        historical_data: Sequence[Dict[str, Any]],
        periods: int = tasks.DEFAULT_FORECAST_PERIODS,
        context: Optional[Context] = None,
    ) -> ExecutionResult:
        """Forecast future periods at the thinker tier."""
        return await self.execute(Request(
            prompt=tasks.forecast_prompt(prompt, historical_data, periods),
            caller_id=caller_id,
            request_kind=RequestKind.FORECAST,
            context=context,
            force_high_tier=True,
        ))

    async def generate_tips(
        self,
        caller_id: str,
        context: Optional[Context] = None,
        focus_area: Optional[str] = None,
    ) -> ExecutionResult:
        return await self.execute(Request(
            prompt=tasks.tips_prompt(context, focus_area),
            caller_id=caller_id,
            request_kind=RequestKind.TIPS,
            context=context,
        ))

    async def extract_gtd_tasks(
        self,
        caller_id: str,
        text: str,
        context: Optional[Context] = None,
    ) -> ExecutionResult:
        return await self.execute(Request(
            prompt=tasks.gtd_prompt(text, context),
            caller_id=caller_id,
            request_kind=RequestKind.GTD,
            context=context,
        ))

    async def _execute(self, run: _Run) -> ExecutionResult:
        request = run.request

        self._enter(run, ExecutionState.SELECTING_TIER)
        run.analysis = self.analyzer.analyze(request.prompt, request.context)
        run.tier = self.selector.select_tier(request)
        logger.debug(
            "tier_selected",
            tier=run.tier.value,
            score=run.analysis.score,
            confidence=run.analysis.confidence,
            factors=run.analysis.factors,
        )

        self._enter(run, ExecutionState.ADMISSION_CHECK)
        admission = await self.rate_limiter.admit(request.caller_id)
        if not admission.allowed:
            return self._decline(
                run, AdmissionDenied(request.caller_id, admission.reset_in_ms),
                reset_in_ms=admission.reset_in_ms,
            )

        self._enter(run, ExecutionState.CREDIT_CHECK)
        try:
            check = await self.credit_gate.check(request.caller_id, run.tier)
        except Exception as exc:
            return self._fail(run, TotalFailure(f"Credit check failed: {exc}", attempts=0))
        if not check.has_credits:
            return self._decline(
                run, InsufficientCredits(request.caller_id, check.required, check.balance),
                required_credits=check.required,
                available_credits=check.balance,
            )

        try:
            turns = await self._conversation(request)
        except Exception as exc:
            return self._fail(run, TotalFailure(f"Conversation history unavailable: {exc}", attempts=0))

        self._enter(run, ExecutionState.CALLING_PRIMARY)
        try:
            served = await self._with_deadline(run, self._serve(run, run.tier, turns))
        except (ProviderNonRetryable, TotalFailure) as exc:
            return self._fail(run, exc)

        worker = None
        if self._should_escalate(run, served):
            worker = served
            served = await self._escalate(run, served, turns)

        return await self._finish(run, served, worker)

    def _should_escalate(self, run: _Run, served: _Served) -> bool:
        return (
            served.tier == Tier.WORKER
            and run.analysis.confidence < self.escalation_threshold
            and has_low_confidence_marker(served.content)
        )

    async def _serve(self, run: _Run, tier: Tier, turns: List[ConversationTurn]) -> _Served:
        """Call the tier's primary model with retries, then its fallback once."""
        pair = self.models[tier]
        instruction = await self._instruction(run.request, tier)

        async def call_primary() -> str:
            return await self._generate(pair.primary, instruction, turns)

        try:
            content = await call_with_retry(
                call_primary, self.retry_policy, sleep=self._sleep, label=f"{tier.value}:{pair.primary}",
            )
            return _Served(tier=tier, model=pair.primary, content=content)
        except ProviderError as exc:
            primary_error = exc

        self._enter(run, ExecutionState.FALLBACK_MODEL)
        logger.warning(
            "falling_back_to_secondary_model",
            tier=tier.value,
            primary=pair.primary,
            fallback=pair.fallback,
            error=str(primary_error),
        )
        try:
            content = await self._generate(pair.fallback, instruction, turns)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            fallback_error = classify_provider_error(exc)
            raise TotalFailure(
                f"Primary model {pair.primary} and fallback model {pair.fallback} failed: {fallback_error}",
                attempts=self.retry_policy.max_attempts + 1,
            ) from exc
        return _Served(tier=tier, model=pair.fallback, content=content)

    async def _escalate(self, run: _Run, served: _Served, turns: List[ConversationTurn]) -> _Served:
        """Re-issue a worker request at the thinker tier, keeping the worker answer on any failure."""
        request = run.request
        self._enter(run, ExecutionState.ESCALATING)

        try:
            check = await self.credit_gate.check(request.caller_id, Tier.THINKER)
        except Exception as exc:
            logger.warning("escalation_skipped_credit_check_failed", error=str(exc))
            return served
        if not check.has_credits:
            logger.info("escalation_skipped_no_credits", required=check.required, balance=check.balance)
            return served

        remaining_ms = self._remaining_ms(run)
        if remaining_ms is not None and remaining_ms <= 0:
            logger.info("escalation_skipped_deadline")
            return served

        self._enter(run, ExecutionState.CALLING_THINKER)
        model = self.models[Tier.THINKER].primary
        logger.info("escalating_to_thinker", confidence=run.analysis.confidence, model=model)
        instruction = await self._instruction(request, Tier.THINKER)
        try:
            content = await self._generate(model, instruction, turns, timeout_ms=remaining_ms)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("escalation_failed", model=model, error=str(classify_provider_error(exc)))
            return served

        return _Served(tier=Tier.THINKER, model=model, content=content)

    async def _finish(self, run: _Run, served: _Served, worker: Optional[_Served] = None) -> ExecutionResult:
        """Charge for the served answer and record the success.

        worker is the answer an escalation replaced. If the thinker charge
        is refused, that answer is returned and charged instead.
        """
        request = run.request
        escalated = served.tier == Tier.THINKER and worker is not None
        try:
            try:
                await self.credit_gate.charge(request.caller_id, served.tier)
            except InsufficientCredits as exc:
                if not escalated:
                    raise
                # Balance fell between the escalation check and the charge
                logger.warning("escalation_charge_refused", required=exc.required, available=exc.available)
                served, escalated = worker, False
                await self.credit_gate.charge(request.caller_id, served.tier)
        except InsufficientCredits as exc:
            # Spent concurrently between check and charge
            return self._decline(run, exc, required_credits=exc.required, available_credits=exc.available)
        except Exception as exc:
            return self._fail(run, TotalFailure(f"Credit charge failed: {exc}", attempts=0))

        cost = self.credit_gate.cost_of(served.tier)
        self._enter(run, ExecutionState.SUCCESS)
        elapsed_ms = self._elapsed_ms(run)
        self.usage.record(
            request.caller_id, served.tier, cost, request.request_kind, True,
            {
                "model": served.model,
                "elapsed_ms": elapsed_ms,
                "escalated": escalated,
                "prompt_length": len(request.prompt),
                "response_length": len(served.content),
            },
        )
        await self._save_turns(request, served.content)

        logger.info(
            "request_routed",
            tier=served.tier.value,
            model=served.model,
            credits=cost,
            escalated=escalated,
            elapsed_ms=elapsed_ms,
        )
        return ExecutionResult(
            success=True,
            tier=served.tier,
            credits_charged=cost,
            content=served.content,
            escalated=escalated,
            elapsed_ms=elapsed_ms,
            model=served.model,
            confidence=run.analysis.confidence,
            conversation_id=request.conversation_id,
            metadata={"path": [state.value for state in run.path], "initial_tier": run.tier.value},
        )

    def _decline(self, run: _Run, error: RouterError, **extra) -> ExecutionResult:
        """Terminal outcome without content; nothing is charged."""
        self._enter(run, ExecutionState.FAIL)
        logger.info("request_declined", tier=run.tier.value, error_kind=error.kind.value, error=str(error))
        return self._terminal_failure(run, error, **extra)

    def _fail(self, run: _Run, error: RouterError) -> ExecutionResult:
        self._enter(run, ExecutionState.FAIL)
        logger.error("request_failed", tier=run.tier.value, error_kind=error.kind.value, error=str(error))
        return self._terminal_failure(run, error)

    def _terminal_failure(self, run: _Run, error: RouterError, **extra) -> ExecutionResult:
        request = run.request
        elapsed_ms = self._elapsed_ms(run)
        self.usage.record(
            request.caller_id, run.tier, 0, request.request_kind, False,
            {
                "elapsed_ms": elapsed_ms,
                "prompt_length": len(request.prompt),
                "error_kind": error.kind.value,
            },
        )
        return ExecutionResult(
            success=False,
            tier=run.tier,
            credits_charged=0,
            error=str(error),
            error_kind=error.kind,
            elapsed_ms=elapsed_ms,
            confidence=run.analysis.confidence if run.analysis else None,
            conversation_id=request.conversation_id,
            metadata={"path": [state.value for state in run.path], "initial_tier": run.tier.value},
            **extra,
        )

    async def _instruction(self, request: Request, tier: Tier) -> str:
        department = request.context.department if request.context else None
        if self.cache is None:
            return self.assembler.build(tier, request.context, request.request_kind)

        key = cache_key(request.caller_id, request.request_kind, department)
        entry = await self.cache.get(key)
        if entry is not None and entry.tier == tier:
            scaffold = entry.content
        else:
            scaffold = self.assembler.scaffold(tier, request.request_kind, department)
            # A live entry for another tier keeps its slot
            if entry is None:
                await self.cache.put(key, scaffold, tier)
        return self.assembler.attach_context(scaffold, request.context)

    async def _conversation(self, request: Request) -> List[ConversationTurn]:
        turns = request.history_turns()
        if request.include_history and request.conversation_id and self.conversation_store is not None:
            turns.extend(await self.conversation_store.load_turns(
                request.caller_id, request.conversation_id, limit=HISTORY_LIMIT,
            ))
        turns.append(ConversationTurn(role=TurnRole.CALLER, text=request.prompt))
        return turns

    async def _save_turns(self, request: Request, content: str) -> None:
        if not request.conversation_id or self.conversation_store is None:
            return
        try:
            await self.conversation_store.append_turn(
                request.caller_id, request.conversation_id, ConversationTurn(TurnRole.CALLER, request.prompt),
            )
            await self.conversation_store.append_turn(
                request.caller_id, request.conversation_id, ConversationTurn(TurnRole.MODEL, content),
            )
        except Exception:
            logger.error("conversation_save_failed", conversation_id=request.conversation_id, exc_info=True)

    async def _generate(
        self,
        model: str,
        instruction: str,
        turns: List[ConversationTurn],
        timeout_ms: Optional[int] = None,
    ) -> str:
        timeout = self.provider_timeout_ms
        if timeout_ms is not None:
            timeout = timeout_ms if timeout is None else min(timeout, timeout_ms)
        call = self.provider.generate(model, instruction, list(turns))
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout / 1000)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"{model} timed out after {timeout}ms", ProviderErrorKind.TRANSIENT) from exc

    async def _with_deadline(self, run: _Run, operation):
        if self.request_timeout_ms is None:
            return await operation
        try:
            return await asyncio.wait_for(operation, self.request_timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise TotalFailure(
                f"Request exceeded its {self.request_timeout_ms}ms deadline", attempts=0,
            ) from exc

    def _remaining_ms(self, run: _Run) -> Optional[int]:
        if self.request_timeout_ms is None:
            return None
        return self.request_timeout_ms - self._elapsed_ms(run)

    def _elapsed_ms(self, run: _Run) -> int:
        return int((self._clock() - run.started_at) * 1000)

    def _enter(self, run: _Run, state: ExecutionState) -> None:
        run.path.append(state)
        logger.debug("execution_state", state=state.value)
