"""
Data models for storage layer.

Defines the records persisted by the router's collaborators.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one terminal routing outcome.

    Append-only: one record per request, written once and never modified.
    """
    timestamp: datetime
    caller_id: str
    tier: str
    credits_charged: int
    request_kind: str
    success: bool
    model: Optional[str] = None
    elapsed_ms: int = 0
    escalated: bool = False
    prompt_length: int = 0
    response_length: int = 0
    error_kind: Optional[str] = None

    def __post_init__(self):
        """Validate charged credits are never negative."""
        if self.credits_charged < 0:
            raise ValueError("credits_charged cannot be negative")
