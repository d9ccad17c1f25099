"""
Tier selection.

Precedence, first match wins:
1. File upload present -> cleaner
2. Forced high tier -> thinker
3. Forecast or analysis requests -> thinker
4. Otherwise -> complexity analysis
"""

from typing import Optional

from .complexity import ComplexityAnalyzer
from .request import Request
from .tiers import RequestKind, Tier

DEEP_REASONING_KINDS = frozenset({RequestKind.FORECAST, RequestKind.ANALYSIS})


class TierSelector:
    """Maps a request to the tier that should serve it."""

    def __init__(self, analyzer: Optional[ComplexityAnalyzer] = None):
        self.analyzer = analyzer or ComplexityAnalyzer()

    def select_tier(self, request: Request) -> Tier:
        """Select the initial tier for a request. Deterministic, no side effects."""
        if request.file_upload is not None:
            return Tier.CLEANER

        if request.force_high_tier:
            return Tier.THINKER

        if request.request_kind in DEEP_REASONING_KINDS:
            return Tier.THINKER

        return self.analyzer.analyze(request.prompt, request.context).tier
