"""Credit ledger.

The credit_transactions table is the source of truth; users.credits is a
projection that is only ever written together with a ledger append, in the
same transaction.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from plateada_server.errors import InsufficientCreditsError, NotFoundError, ValidationError
from .connection import Transaction, atomic
from .models import CreditTransaction


logger = logging.getLogger(__name__)


TRANSACTION_TYPES = ("welcome", "purchase", "session_charge", "session_refund")


def _row_to_transaction(row: dict) -> CreditTransaction:
    return CreditTransaction(
        id=row["id"],
        user_id=row["user_id"],
        amount=int(row["amount"]),
        transaction_type=row["transaction_type"],
        session_id=row.get("session_id"),
        description=row.get("description"),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _read_balance(tx: Transaction, user_id: str) -> Optional[int]:
    rows = tx.execute("SELECT credits FROM users WHERE id = ?", [user_id])
    if rows:
        return int(rows[0]["credits"])
    return None


def apply_entry(
    tx: Transaction,
    user_id: str,
    amount: int,
    transaction_type: str,
    session_id: Optional[str] = None,
    description: Optional[str] = None,
) -> CreditTransaction:
    """Move the cached balance by `amount` and append the matching entry.

    The balance update is guarded in SQL, so a debit can never take the
    balance below zero even when two callers race for the same user.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")

    now = datetime.now(timezone.utc).isoformat()
    tx.execute(
        """
        UPDATE users SET credits = credits + ?, updated_at = ?
        WHERE id = ? AND credits + ? >= 0
        """,
        [amount, now, user_id, amount],
    )

    if tx.changes == 0:
        balance = _read_balance(tx, user_id)
        if balance is None:
            raise NotFoundError("User not found")
        raise InsufficientCreditsError(credits=balance, credits_needed=-amount)

    transaction_id = str(uuid.uuid4())
    tx.execute(
        """
        INSERT INTO credit_transactions (id, user_id, amount, transaction_type, session_id, description, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [transaction_id, user_id, amount, transaction_type, session_id, description, now],
    )

    logger.info(f"Ledger {transaction_type} {amount:+d} for user {user_id}")

    return CreditTransaction(
        id=transaction_id,
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
        session_id=session_id,
        description=description,
        created_at=datetime.fromisoformat(now),
    )


async def debit(
    user_id: str,
    amount: int,
    transaction_type: str = "session_charge",
    session_id: Optional[str] = None,
    description: Optional[str] = None,
    tx: Optional[Transaction] = None,
) -> int:
    """Take credits from a user and return the new balance.

    Raises:
        InsufficientCreditsError: balance < amount (nothing is written)
        NotFoundError: unknown user
    """
    if amount <= 0:
        raise ValidationError("Debit amount must be positive")

    with atomic(tx) as cur:
        apply_entry(cur, user_id, -amount, transaction_type, session_id, description)
        return _read_balance(cur, user_id)


async def credit(
    user_id: str,
    amount: int,
    transaction_type: str,
    session_id: Optional[str] = None,
    description: Optional[str] = None,
    tx: Optional[Transaction] = None,
) -> int:
    """Give credits to a user and return the new balance."""
    if amount <= 0:
        raise ValidationError("Credit amount must be positive")

    with atomic(tx) as cur:
        apply_entry(cur, user_id, amount, transaction_type, session_id, description)
        return _read_balance(cur, user_id)


async def get_balance(user_id: str) -> int:
    """Get the cached balance of a user."""
    with atomic() as tx:
        balance = _read_balance(tx, user_id)
    if balance is None:
        raise NotFoundError("User not found")
    return balance


async def purchase_credits(
    user_id: str,
    amount: int,
    min_amount: int = 1,
    max_amount: int = 50,
) -> int:
    """Simulated credit purchase. No payment is processed."""
    if amount < min_amount or amount > max_amount:
        raise ValidationError(
            f"Invalid amount ({min_amount}-{max_amount})",
            min_amount=min_amount,
            max_amount=max_amount,
        )

    return await credit(
        user_id,
        amount,
        "purchase",
        description=f"Purchased {amount} credits",
    )


async def get_transactions(user_id: str) -> list[CreditTransaction]:
    """Get a user's ledger in insertion order."""
    with atomic() as tx:
        rows = tx.execute(
            "SELECT * FROM credit_transactions WHERE user_id = ? ORDER BY created_at, rowid",
            [user_id],
        )
    return [_row_to_transaction(row) for row in rows]


async def get_ledger_total(user_id: str) -> int:
    """Reconstruct a balance from the ledger alone."""
    with atomic() as tx:
        rows = tx.execute(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM credit_transactions WHERE user_id = ?",
            [user_id],
        )
    return int(rows[0]["total"])
