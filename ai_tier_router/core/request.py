"""
Request and context data structures.

A Request is built once per inbound call and never mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind
from .tiers import RequestKind, Tier


class TurnRole(Enum):
    """Author of a conversation turn."""
    CALLER = "caller"
    MODEL = "model"


@dataclass(frozen=True)
class ConversationTurn:
    """One turn of a conversation sent to the generation provider."""
    role: TurnRole
    text: str


@dataclass(frozen=True)
class BoardSummary:
    """Summary of a board-like task collection."""
    name: str
    item_count: int
    columns: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.item_count < 0:
            raise ValueError("item_count cannot be negative")


@dataclass(frozen=True)
class TableSummary:
    """Summary of a tabular row collection."""
    name: str
    row_count: int
    columns: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.row_count < 0:
            raise ValueError("row_count cannot be negative")


@dataclass(frozen=True)
class FileUploadDescriptor:
    """Uploaded file awaiting structure normalization."""
    file_name: str
    headers: Tuple[str, ...]
    file_type: str
    sample_rows: Tuple[Dict[str, Any], ...] = ()

    def __post_init__(self):
        if self.file_type not in ("csv", "xlsx", "json"):
            raise ValueError("file_type must be one of: csv, xlsx, json")


@dataclass(frozen=True)
class Context:
    """Optional request context.

    Board and table summaries are mutually exclusive.
    """
    department: Optional[str] = None
    role: Optional[str] = None
    project_context: Optional[str] = None
    history: Tuple[ConversationTurn, ...] = ()
    board: Optional[BoardSummary] = None
    table: Optional[TableSummary] = None

    def __post_init__(self):
        if self.board is not None and self.table is not None:
            raise ValueError("context may carry a board summary or a table summary, not both")


@dataclass(frozen=True)
class Request:
    """Immutable natural-language request entering the router."""
    prompt: str
    caller_id: str
    request_kind: RequestKind = RequestKind.GENERAL
    context: Optional[Context] = None
    force_high_tier: bool = False
    file_upload: Optional[FileUploadDescriptor] = None
    conversation_id: Optional[str] = None
    include_history: bool = False

    def __post_init__(self):
        """Validate required request fields."""
        if not self.caller_id or not self.caller_id.strip():
            raise ValueError("caller_id is required and cannot be empty")
        if self.prompt is None:
            raise ValueError("prompt is required")

    def history_turns(self) -> List[ConversationTurn]:
        """Prior turns carried on the context, oldest first."""
        if self.context is None:
            return []
        return list(self.context.history)


@dataclass
class ExecutionResult:
    """Terminal outcome of routing one request."""
    success: bool
    tier: Tier
    credits_charged: int = 0
    content: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    escalated: bool = False
    elapsed_ms: int = 0
    model: Optional[str] = None
    confidence: Optional[float] = None
    conversation_id: Optional[str] = None
    required_credits: Optional[int] = None
    available_credits: Optional[int] = None
    reset_in_ms: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
