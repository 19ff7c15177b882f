"""Per-user credit balance with a transaction log, stored in SQLite.

Amounts are ``Decimal`` dollars rounded to 8 places and stored as text so
no precision is lost to floating point.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

from loguru import logger

from agentchat.application.billing import quantize

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS user_credits (
    user_id TEXT PRIMARY KEY,
    balance TEXT NOT NULL DEFAULT '0',
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS credit_transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    type TEXT NOT NULL CHECK(type IN ('grant', 'usage')),
    message_id TEXT,
    model_id TEXT,
    description TEXT NOT NULL DEFAULT '',
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_credit_transactions_user_id ON credit_transactions(user_id);
"""


def _utcnow() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S.%f")


class CreditLedger:
    """Credit balances keyed by user ID."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.commit()

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def balance(self, user_id: str) -> Decimal:
        assert self.conn
        row = self.conn.execute(
            "SELECT balance FROM user_credits WHERE user_id = ?", (user_id,)
        ).fetchone()
        return Decimal(row["balance"]) if row else Decimal(0)

    def has_credits(self, user_id: str) -> bool:
        return self.balance(user_id) > 0

    def grant(self, user_id: str, amount: Decimal, description: str = "") -> Decimal:
        """Add *amount* to the balance and return the new balance."""
        return self._apply(user_id, quantize(amount), "grant", description=description)

    def ensure_account(self, user_id: str, initial: Decimal) -> Decimal:
        """Create the account with *initial* credits unless it already exists."""
        assert self.conn
        exists = self.conn.execute(
            "SELECT 1 FROM user_credits WHERE user_id = ?", (user_id,)
        ).fetchone()
        if exists:
            return self.balance(user_id)
        return self.grant(user_id, initial, description="Sign-up credits")

    def charge(
        self,
        user_id: str,
        amount: Decimal,
        *,
        message_id: str | None = None,
        model_id: str | None = None,
        description: str = "",
    ) -> Decimal:
        """Deduct *amount*; the balance may go negative on the final turn."""
        return self._apply(
            user_id,
            -quantize(amount),
            "usage",
            message_id=message_id,
            model_id=model_id,
            description=description,
        )

    def _apply(
        self,
        user_id: str,
        delta: Decimal,
        kind: str,
        *,
        message_id: str | None = None,
        model_id: str | None = None,
        description: str = "",
    ) -> Decimal:
        assert self.conn
        now = _utcnow()
        with self.conn:
            new_balance = quantize(self.balance(user_id) + delta)
            self.conn.execute(
                "INSERT INTO user_credits (user_id, balance, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET balance = excluded.balance, updated_at = excluded.updated_at",
                (user_id, str(new_balance), now),
            )
            self.conn.execute(
                "INSERT INTO credit_transactions "
                "(id, user_id, amount, type, message_id, model_id, description, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (str(uuid.uuid4()), user_id, str(delta), kind, message_id, model_id, description, now),
            )
        logger.info("Credits {} | user={} delta={} balance={}", kind, user_id, delta, new_balance)
        return new_balance
