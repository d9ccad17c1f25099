"""
Service tiers and credit costs.

Defines the three model tiers a request can be served at and the fixed
credit cost of each.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Tier(Enum):
    """Service tiers ordered by cost and capability."""
    CLEANER = "cleaner"  # File-structure normalization only
    WORKER = "worker"    # Default engine
    THINKER = "thinker"  # Deep analysis

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    def __lt__(self, other: "Tier") -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank < other.rank


_TIER_ORDER = [Tier.CLEANER, Tier.WORKER, Tier.THINKER]


class RequestKind(Enum):
    """Kinds of request the router understands."""
    CHART = "chart"
    GTD = "gtd"
    ANALYSIS = "analysis"
    UPLOAD = "upload"
    GENERAL = "general"
    TABLE = "table"
    FORECAST = "forecast"
    TIPS = "tips"


@dataclass(frozen=True)
class CreditTable:
    """Fixed credit cost for each tier."""
    costs: Dict[Tier, int]

    def __post_init__(self):
        """Validate every tier is priced and no cost is negative."""
        missing = [tier.value for tier in Tier if tier not in self.costs]
        if missing:
            raise ValueError(f"Missing credit cost for tiers: {missing}")
        for tier, cost in self.costs.items():
            if not isinstance(cost, int) or cost < 0:
                raise ValueError(f"credit cost for {tier.value} must be a non-negative integer")

    def cost_of(self, tier: Tier) -> int:
        """Get the credit cost of serving one request at a tier.

        Args:
            tier: Service tier

        Returns:
            Credits charged for the tier
        """
        return self.costs[tier]


DEFAULT_CREDIT_TABLE = CreditTable({
    Tier.CLEANER: 1,
    Tier.WORKER: 1,
    Tier.THINKER: 5,
})
