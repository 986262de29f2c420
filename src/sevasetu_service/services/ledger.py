"""Wallet ledger: balances and the append-only entry log."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, cast

from service_commons.exceptions import ServiceError

from sevasetu_service.core.exceptions import InsufficientFundsError
from sevasetu_service.domain import utc_now_iso

if TYPE_CHECKING:
    import sqlite3

    from sevasetu_service.services.database import Database

_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    entry_id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL REFERENCES accounts(account_id),
    type TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount > 0),
    balance_after INTEGER NOT NULL,
    reference TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_entry_reference
    ON ledger_entries(account_id, type, reference);

CREATE INDEX IF NOT EXISTS ix_entries_account_timestamp
    ON ledger_entries(account_id, timestamp, entry_id);
"""


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ServiceError("INVALID_AMOUNT", "Amount must be a positive integer", 400, {})


class Ledger:
    """
    Customer and VLE wallets.

    Mutating methods take the connection of an open ``Database.transaction()``
    so a balance change commits or rolls back together with the task,
    payment request or camp write that caused it. Each (account, type,
    reference) pair can be booked once; repeating a credit with the same
    reference returns the original entry instead of crediting twice.
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        database.ensure_schema(_SCHEMA)

    def open_account(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        initial_balance: int = 0,
    ) -> dict[str, object]:
        """
        Create a wallet for a directory user.

        Raises:
            ServiceError: INVALID_AMOUNT if initial_balance < 0.
        """
        if isinstance(initial_balance, bool) or initial_balance < 0:
            raise ServiceError("INVALID_AMOUNT", "Initial balance must be non-negative", 400, {})

        now = utc_now_iso()
        conn.execute(
            "INSERT INTO accounts (account_id, balance, created_at) VALUES (?, ?, ?)",
            (account_id, initial_balance, now),
        )
        if initial_balance > 0:
            self._insert_entry(
                conn, account_id, "credit", initial_balance, initial_balance, "initial_balance"
            )
        return {"account_id": account_id, "balance": initial_balance, "created_at": now}

    def get_balance(self, conn: sqlite3.Connection, account_id: str) -> int:
        """
        Read the current balance inside a transaction.

        Raises:
            ServiceError: ACCOUNT_NOT_FOUND.
        """
        row = conn.execute(
            "SELECT balance FROM accounts WHERE account_id = ?", (account_id,)
        ).fetchone()
        if row is None:
            raise ServiceError("ACCOUNT_NOT_FOUND", "Wallet account not found", 404, {})
        return cast("int", row[0])

    def debit(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        amount: int,
        reference: str,
    ) -> dict[str, object]:
        """
        Remove funds from a wallet.

        Raises:
            ServiceError: INVALID_AMOUNT, ACCOUNT_NOT_FOUND.
            InsufficientFundsError: balance below amount; nothing is written.
        """
        _check_amount(amount)
        balance = self.get_balance(conn, account_id)
        if balance < amount:
            raise InsufficientFundsError(required=amount, available=balance)

        cursor = conn.execute(
            "UPDATE accounts SET balance = balance - ? WHERE account_id = ? AND balance >= ?",
            (amount, account_id, amount),
        )
        if cursor.rowcount == 0:
            raise InsufficientFundsError(required=amount, available=balance)

        balance_after = balance - amount
        entry_id = self._insert_entry(conn, account_id, "debit", amount, balance_after, reference)
        return {"entry_id": entry_id, "balance_after": balance_after}

    def credit(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        amount: int,
        reference: str,
    ) -> dict[str, object]:
        """
        Add funds to a wallet, at most once per reference.

        Raises:
            ServiceError: INVALID_AMOUNT, ACCOUNT_NOT_FOUND,
                PAYLOAD_MISMATCH if the reference was used with another amount.
        """
        _check_amount(amount)

        existing = conn.execute(
            "SELECT entry_id, amount, balance_after FROM ledger_entries "
            "WHERE account_id = ? AND type = 'credit' AND reference = ?",
            (account_id, reference),
        ).fetchone()
        if existing is not None:
            if cast("int", existing[1]) != amount:
                raise ServiceError(
                    "PAYLOAD_MISMATCH",
                    "Duplicate credit reference used with a different amount",
                    400,
                    {},
                )
            return {"entry_id": existing[0], "balance_after": existing[2]}

        balance = self.get_balance(conn, account_id)
        conn.execute(
            "UPDATE accounts SET balance = balance + ? WHERE account_id = ?",
            (amount, account_id),
        )
        balance_after = balance + amount
        entry_id = self._insert_entry(conn, account_id, "credit", amount, balance_after, reference)
        return {"entry_id": entry_id, "balance_after": balance_after}

    def _insert_entry(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        entry_type: str,
        amount: int,
        balance_after: int,
        reference: str,
    ) -> str:
        entry_id = f"le-{uuid.uuid4()}"
        conn.execute(
            "INSERT INTO ledger_entries "
            "(entry_id, account_id, type, amount, balance_after, reference, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (entry_id, account_id, entry_type, amount, balance_after, reference, utc_now_iso()),
        )
        return entry_id

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> dict[str, object] | None:
        """Look up a wallet by ID. Returns None if not found."""
        with self._database.reader() as conn:
            row = conn.execute(
                "SELECT account_id, balance, created_at FROM accounts WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        if row is None:
            return None
        return {"account_id": row[0], "balance": row[1], "created_at": row[2]}

    def get_entries(self, account_id: str) -> list[dict[str, object]]:
        """
        Entry history for a wallet in booking order.

        Raises:
            ServiceError: ACCOUNT_NOT_FOUND.
        """
        if self.get_account(account_id) is None:
            raise ServiceError("ACCOUNT_NOT_FOUND", "Wallet account not found", 404, {})

        with self._database.reader() as conn:
            rows = conn.execute(
                "SELECT entry_id, type, amount, balance_after, reference, timestamp "
                "FROM ledger_entries WHERE account_id = ? ORDER BY rowid",
                (account_id,),
            ).fetchall()
        return [
            {
                "entry_id": row[0],
                "type": row[1],
                "amount": row[2],
                "balance_after": row[3],
                "reference": row[4],
                "timestamp": row[5],
            }
            for row in rows
        ]
