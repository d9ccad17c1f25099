"""
Prompt complexity analysis.

Scores free-text prompts plus structured context with weighted rule sets
and maps the score to a service tier. Pure: no I/O and no shared state.

Scoring:
- Each matching pattern adds its rule set's pattern weight (30/15/5)
- Each matching keyword adds its rule set's keyword weight (5/3/0)
- Row/item counts and table column counts above fixed brackets add a data-volume bonus
- Prompts over 500 characters add a flat bonus
- More than two question marks add 5 per question mark
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from .request import Context
from .tiers import Tier


@dataclass(frozen=True)
class RuleSet:
    """Weighted patterns and keywords for one complexity level."""
    name: str
    patterns: Tuple[re.Pattern, ...]
    keywords: Tuple[str, ...]
    pattern_weight: int
    keyword_weight: int


@dataclass(frozen=True)
class VolumeBracket:
    """Thresholds above which a count adds a bonus."""
    medium: int
    high: int
    medium_bonus: int
    high_bonus: int

    def bonus(self, count: int) -> int:
        if count > self.high:
            return self.high_bonus
        if count > self.medium:
            return self.medium_bonus
        return 0


@dataclass(frozen=True)
class ComplexityScore:
    """Heuristic complexity estimate for one prompt."""
    score: int
    tier: Tier
    confidence: float
    factors: List[str] = field(default_factory=list)


def _compile(*sources: str) -> Tuple[re.Pattern, ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


HIGH_RULES = RuleSet(
    name="High",
    patterns=_compile(
        r"analyze.*trend",
        r"predict.*risk",
        r"cross.*department",
        r"strategic.*advice",
        r"comprehensive.*audit",
        r"compare.*all",
        r"forecast.*(?:revenue|sales|growth|demand)",
        r"correlation.*between",
        r"multi.*(?:file|source|department)",
        r"q[1-4].*projection",
        r"(?:annual|quarterly|monthly).*(?:report|analysis)",
        r"root.*cause.*analysis",
        r"what.*(?:if|should)",
        r"optimize.*(?:across|multiple)",
        r"identify.*(?:patterns|anomalies|outliers)",
        r"benchmark.*(?:against|comparison)",
        r"scenario.*planning",
        r"risk.*assessment",
        r"performance.*(?:gap|improvement)",
    ),
    keywords=(
        "strategic", "comprehensive", "holistic", "enterprise-wide",
        "cross-functional", "long-term", "predictive", "diagnostic",
        "prescriptive", "correlation", "regression", "sentiment",
        "anomaly", "outlier", "benchmark", "competitive", "market",
    ),
    pattern_weight=30,
    keyword_weight=5,
)

MEDIUM_RULES = RuleSet(
    name="Medium",
    patterns=_compile(
        r"create.*(?:chart|graph|visualization)",
        r"generate.*(?:report|summary)",
        r"show.*(?:data|metrics|stats)",
        r"compare.*(?:two|these|specific)",
        r"calculate.*(?:total|average|sum)",
        r"list.*(?:top|bottom|all)",
        r"group.*by",
        r"filter.*(?:where|when)",
        r"sort.*(?:by|ascending|descending)",
    ),
    keywords=(
        "chart", "graph", "table", "report", "summary", "list",
        "calculate", "count", "total", "average", "filter", "sort",
    ),
    pattern_weight=15,
    keyword_weight=3,
)

# Low keywords are listed for reference only and add nothing to the score.
LOW_RULES = RuleSet(
    name="Low",
    patterns=_compile(
        r"add.*task",
        r"create.*(?:task|item|entry)",
        r"update.*(?:status|field)",
        r"delete.*(?:task|item)",
        r"mark.*(?:complete|done)",
        r"what.*is",
        r"how.*(?:many|much)",
        r"when.*(?:is|was)",
    ),
    keywords=(
        "add", "create", "update", "delete", "simple", "basic",
        "quick", "single", "one", "specific",
    ),
    pattern_weight=5,
    keyword_weight=0,
)

ROW_BRACKET = VolumeBracket(medium=1000, high=10000, medium_bonus=10, high_bonus=20)
# Only tables past the high mark count as wide
COLUMN_BRACKET = VolumeBracket(medium=30, high=30, medium_bonus=0, high_bonus=15)

LONG_PROMPT_CHARS = 500
LONG_PROMPT_BONUS = 10
QUESTION_MARK_THRESHOLD = 2
QUESTION_MARK_BONUS = 5

THINKER_THRESHOLD = 50
WORKER_THRESHOLD = 20

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


def tokenize(prompt: str) -> Set[str]:
    """Lower-case word tokens of a prompt; hyphenated words stay whole."""
    return set(_TOKEN_RE.findall(prompt.lower()))


class ComplexityAnalyzer:
    """Scores prompts against weighted rule sets."""

    def __init__(
        self,
        rule_sets: Tuple[RuleSet, ...] = (HIGH_RULES, MEDIUM_RULES, LOW_RULES),
        row_bracket: VolumeBracket = ROW_BRACKET,
        column_bracket: VolumeBracket = COLUMN_BRACKET,
    ):
        self.rule_sets = rule_sets
        self.row_bracket = row_bracket
        self.column_bracket = column_bracket

    def analyze(self, prompt: str, context: Optional[Context] = None) -> ComplexityScore:
        """Score a prompt and map it to a tier.

        Cleaner is never returned here; it is reserved for file uploads and
        decided by the tier selector.

        Args:
            prompt: Free-text request
            context: Optional structured context

        Returns:
            ComplexityScore with score, tier, confidence and ordered factors
        """
        factors: List[str] = []
        score = 0
        words = tokenize(prompt)

        for rules in self.rule_sets:
            for pattern in rules.patterns:
                if pattern.search(prompt):
                    score += rules.pattern_weight
                    factors.append(f"{rules.name} complexity pattern: {pattern.pattern}")
            if rules.keyword_weight <= 0:
                continue
            for keyword in rules.keywords:
                if keyword in words:
                    score += rules.keyword_weight
                    factors.append(f"{rules.name} complexity keyword: {keyword}")

        score += self._score_data_volume(context, factors)

        if len(prompt) > LONG_PROMPT_CHARS:
            score += LONG_PROMPT_BONUS
            factors.append("Long prompt")

        question_marks = prompt.count("?")
        if question_marks > QUESTION_MARK_THRESHOLD:
            score += question_marks * QUESTION_MARK_BONUS
            factors.append(f"Multiple questions: {question_marks}")

        tier, confidence = map_score(score)
        return ComplexityScore(score=score, tier=tier, confidence=confidence, factors=factors)

    def _score_data_volume(self, context: Optional[Context], factors: List[str]) -> int:
        if context is None:
            return 0

        bonus = 0
        columns = ()
        if context.board is not None:
            rows, label = context.board.item_count, "tasks"
        elif context.table is not None:
            rows, columns, label = context.table.row_count, context.table.columns, "rows"
        else:
            return 0

        row_bonus = self.row_bracket.bonus(rows)
        if row_bonus:
            size = "Large" if rows > self.row_bracket.high else "Medium"
            bonus += row_bonus
            factors.append(f"{size} dataset: {rows} {label}")

        column_bonus = self.column_bracket.bonus(len(columns))
        if column_bonus:
            bonus += column_bonus
            factors.append(f"Wide table: {len(columns)} columns")

        return bonus


def map_score(score: int) -> Tuple[Tier, float]:
    """Map a complexity score to a tier and a confidence in [0, 1]."""
    if score >= THINKER_THRESHOLD:
        return Tier.THINKER, min(0.95, 0.6 + (score - THINKER_THRESHOLD) / 100)
    if score >= WORKER_THRESHOLD:
        return Tier.WORKER, min(0.9, 0.5 + (score - WORKER_THRESHOLD) / 60)
    return Tier.WORKER, 0.8
