"""
Repository pattern for data access.

SQLite implementations of the ledger, usage sink and conversation store the
router consumes, plus read-side usage statistics. Blocking sqlite calls run
in a worker thread; each call opens and closes its own connection.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.request import ConversationTurn, TurnRole
from ..core.tiers import Tier
from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageRecord


class LedgerError(Exception):
    """Raised when a ledger mutation cannot be applied."""


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single usage record into the append-only ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO usage_record
            (timestamp, caller_id, tier, credits_charged, request_kind, success,
             model, elapsed_ms, escalated, prompt_length, response_length, error_kind)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.timestamp.isoformat(),
            record.caller_id,
            record.tier,
            record.credits_charged,
            record.request_kind,
            int(record.success),
            record.model,
            record.elapsed_ms,
            int(record.escalated),
            record.prompt_length,
            record.response_length,
            record.error_kind,
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_usage_records(
    caller_id: str,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH,
) -> List[UsageRecord]:
    """Fetch a caller's usage records, newest first."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            SELECT timestamp, caller_id, tier, credits_charged, request_kind, success,
                   model, elapsed_ms, escalated, prompt_length, response_length, error_kind
            FROM usage_record
            WHERE caller_id = ?
            ORDER BY id DESC
            LIMIT ?
        """, (caller_id, limit))
        return [
            UsageRecord(
                timestamp=datetime.fromisoformat(row[0]),
                caller_id=row[1],
                tier=row[2],
                credits_charged=row[3],
                request_kind=row[4],
                success=bool(row[5]),
                model=row[6],
                elapsed_ms=row[7],
                escalated=bool(row[8]),
                prompt_length=row[9],
                response_length=row[10],
                error_kind=row[11],
            )
            for row in cursor.fetchall()
        ]
    finally:
        conn.close()


class SqliteUsageSink:
    """Usage sink writing to the usage_record table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def write(self, record: UsageRecord) -> None:
        await asyncio.to_thread(insert_usage_record, record, self.db_path)


class SqliteCreditLedger:
    """Credit balances in the credit_account table.

    A caller without an account has a balance of zero. Mutations run in a
    single IMMEDIATE transaction, so each call is atomic across processes.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def get_balance(self, caller_id: str) -> int:
        return await asyncio.to_thread(self._get_balance, caller_id)

    async def decrement(self, caller_id: str, amount: int) -> int:
        return await asyncio.to_thread(self._apply, caller_id, -amount)

    async def increment(self, caller_id: str, amount: int) -> int:
        return await asyncio.to_thread(self._apply, caller_id, amount)

    def _get_balance(self, caller_id: str) -> int:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT balance FROM credit_account WHERE caller_id = ?", (caller_id,)
            ).fetchone()
            return row[0] if row else 0
        finally:
            conn.close()

    def _apply(self, caller_id: str, delta: int) -> int:
        conn = get_connection(self.db_path)
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT balance FROM credit_account WHERE caller_id = ?", (caller_id,)
            ).fetchone()
            if row is None and delta < 0:
                raise LedgerError(f"No credit account for caller '{caller_id}'")
            balance = (row[0] if row else 0) + delta
            if balance < 0:
                raise LedgerError(
                    f"Debit of {-delta} would overdraw caller '{caller_id}' (balance {row[0]})"
                )
            conn.execute("""
                INSERT INTO credit_account (caller_id, balance, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(caller_id) DO UPDATE SET
                    balance = excluded.balance,
                    updated_at = excluded.updated_at
            """, (caller_id, balance, datetime.now().isoformat()))
            conn.execute("COMMIT")
            return balance
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()


class SqliteConversationStore:
    """Conversation turns in the conversation_turn table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def load_turns(self, caller_id: str, conversation_id: str, limit: int = 10) -> List[ConversationTurn]:
        return await asyncio.to_thread(self._load_turns, caller_id, conversation_id, limit)

    async def append_turn(self, caller_id: str, conversation_id: str, turn: ConversationTurn) -> None:
        await asyncio.to_thread(self._append_turn, caller_id, conversation_id, turn)

    def _load_turns(self, caller_id: str, conversation_id: str, limit: int) -> List[ConversationTurn]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT role, text FROM conversation_turn
                WHERE caller_id = ? AND conversation_id = ?
                ORDER BY id DESC
                LIMIT ?
            """, (caller_id, conversation_id, limit))
            rows = cursor.fetchall()
        finally:
            conn.close()
        # Most recent turns, returned oldest first
        return [ConversationTurn(role=TurnRole(role), text=text) for role, text in reversed(rows)]

    def _append_turn(self, caller_id: str, conversation_id: str, turn: ConversationTurn) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO conversation_turn (caller_id, conversation_id, role, text, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (caller_id, conversation_id, turn.role.value, turn.text, datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()


class UsageRepository:
    """Read-side access to the usage ledger.

    This class provides a higher-level interface to the database operations,
    making it easier to report on usage in a type-safe manner.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_usage_stats(
        self,
        caller_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Get usage statistics for a caller.

        Args:
            caller_id: Caller to report on
            start: Optional inclusive lower bound on record timestamps
            end: Optional inclusive upper bound on record timestamps

        Returns:
            Dictionary with total_requests, total_credits_used, by_tier,
            by_kind and success_rate (0.0 when there are no requests)
        """
        conditions = ["caller_id = ?"]
        params: List[Any] = [caller_id]
        if start is not None:
            conditions.append("timestamp >= ?")
            params.append(start.isoformat())
        if end is not None:
            conditions.append("timestamp <= ?")
            params.append(end.isoformat())
        where = " AND ".join(conditions)

        conn = get_connection(self.db_path)
        try:
            total_requests, total_credits, successes = conn.execute(f"""
                SELECT COUNT(*), SUM(credits_charged), SUM(success)
                FROM usage_record WHERE {where}
            """, params).fetchone()

            by_tier = {tier.value: 0 for tier in Tier}
            by_tier.update(conn.execute(f"""
                SELECT tier, COUNT(*) FROM usage_record WHERE {where}
                GROUP BY tier ORDER BY tier
            """, params).fetchall())

            by_kind = dict(conn.execute(f"""
                SELECT request_kind, COUNT(*) FROM usage_record WHERE {where}
                GROUP BY request_kind ORDER BY request_kind
            """, params).fetchall())
        finally:
            conn.close()

        total_requests = total_requests or 0
        return {
            "total_requests": total_requests,
            "total_credits_used": total_credits or 0,
            "by_tier": by_tier,
            "by_kind": by_kind,
            "success_rate": (successes or 0) / total_requests if total_requests else 0.0,
        }
