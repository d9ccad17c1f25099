"""
Database connection management.

Provides SQLite connection and schema for the router's persisted state.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".ai-tier-router.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=30)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the router tables if they don't exist.

    usage_record is an append-only ledger: rows are never updated or deleted.
    credit_account holds one mutable balance per caller.
    conversation_turn holds prior turns keyed by caller and conversation.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS usage_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                caller_id TEXT NOT NULL,
                tier TEXT NOT NULL,
                credits_charged INTEGER NOT NULL CHECK (credits_charged >= 0),
                request_kind TEXT NOT NULL,
                success INTEGER NOT NULL,
                model TEXT,
                elapsed_ms INTEGER NOT NULL DEFAULT 0,
                escalated INTEGER NOT NULL DEFAULT 0,
                prompt_length INTEGER NOT NULL DEFAULT 0,
                response_length INTEGER NOT NULL DEFAULT 0,
                error_kind TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_usage_record_caller
                ON usage_record (caller_id, timestamp);

            CREATE TABLE IF NOT EXISTS credit_account (
                caller_id TEXT PRIMARY KEY,
                balance INTEGER NOT NULL CHECK (balance >= 0),
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS conversation_turn (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                caller_id TEXT NOT NULL,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                text TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_conversation_turn_lookup
                ON conversation_turn (caller_id, conversation_id, id);
        """)
        conn.commit()
    finally:
        conn.close()
