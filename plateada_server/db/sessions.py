"""Session lifecycle.

    pending  --accept (expert)-->   accepted  --complete--> completed
    pending  --reject (expert)-->   rejected                (refund)
    accepted --dispute (client)-->  disputed

rejected, completed, disputed and expired are terminal.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from plateada_server.errors import (
    IllegalTransitionError,
    InvalidStatusError,
    NotFoundError,
    PermissionDeniedError,
)
from .connection import Transaction, atomic
from .ledger import apply_entry
from .models import SessionCreate, SessionRequest, User


logger = logging.getLogger(__name__)


SESSION_STATUSES = ("pending", "accepted", "rejected", "completed", "disputed", "expired")

# Statuses a caller may ask for. pending and expired are never requested.
TRANSITION_TARGETS = ("accepted", "rejected", "completed", "disputed")

LEGAL_TRANSITIONS = {
    "pending": ("accepted", "rejected"),
    "accepted": ("completed", "disputed"),
}

# Which participant may request each target. Missing means either side.
TRANSITION_ACTORS = {
    "accepted": "expert",
    "rejected": "expert",
    "disputed": "client",
}


def validate_target(target: str) -> None:
    if target not in TRANSITION_TARGETS:
        raise InvalidStatusError(
            f"Invalid status. Options: {', '.join(TRANSITION_TARGETS)}"
        )


def check_transition(current: str, target: str) -> None:
    """Validate a status change against the transition table."""
    validate_target(target)
    if target not in LEGAL_TRANSITIONS.get(current, ()):
        raise IllegalTransitionError(current, target)


def check_actor(row: dict, target: str, actor_id: str) -> None:
    """Only participants may move a session, and only on their own side's events."""
    if actor_id not in (row["client_id"], row["expert_user_id"]):
        raise PermissionDeniedError("Only the session participants can change its status")

    side = TRANSITION_ACTORS.get(target)
    if side == "expert" and actor_id != row["expert_user_id"]:
        raise PermissionDeniedError(f"Only the expert can mark a session as {target}")
    if side == "client" and actor_id != row["client_id"]:
        raise PermissionDeniedError(f"Only the client can mark a session as {target}")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_session(row: dict) -> SessionRequest:
    return SessionRequest(
        id=row["id"],
        client_id=row["client_id"],
        expert_id=row["expert_id"],
        status=row["status"],
        requested_date=row["requested_date"],
        requested_time=row.get("requested_time") or "",
        requested_duration=row.get("requested_duration") or "",
        credits_cost=int(row["credits_cost"]),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
        completed_at=_parse_dt(row.get("completed_at")),
        expert_name=row.get("expert_name"),
        expert_service=row.get("expert_service"),
        client_name=row.get("client_name"),
    )


def _fetch_session(tx: Transaction, session_id: str) -> Optional[dict]:
    rows = tx.execute(
        """
        SELECT s.*, e.user_id AS expert_user_id
        FROM sessions s
        JOIN experts e ON s.expert_id = e.id
        WHERE s.id = ?
        """,
        [session_id],
    )
    return rows[0] if rows else None


async def get_session(session_id: str) -> Optional[SessionRequest]:
    with atomic() as tx:
        row = _fetch_session(tx, session_id)
    return _row_to_session(row) if row else None


async def create_session(client: User, data: SessionCreate, credits_cost: int = 1) -> tuple[SessionRequest, int]:
    """Create a pending session request and charge the client.

    The insert and the charge share one transaction: if the client cannot
    pay, no session row survives.

    Returns:
        (session, remaining credits)

    Raises:
        NotFoundError: unknown expert
        InsufficientCreditsError: balance < credits_cost
    """
    now = datetime.now(timezone.utc).isoformat()
    session_id = str(uuid.uuid4())

    with atomic() as tx:
        if not tx.execute("SELECT id FROM experts WHERE id = ?", [data.expert_id]):
            raise NotFoundError("Expert not found")

        tx.execute(
            """
            INSERT INTO sessions (id, client_id, expert_id, status, requested_date, requested_time,
                                  requested_duration, credits_cost, created_at, updated_at)
            VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?)
            """,
            [session_id, client.id, data.expert_id, data.requested_date,
             data.requested_time or "", data.requested_duration or "1 hora",
             credits_cost, now, now],
        )

        apply_entry(
            tx, client.id, -credits_cost, "session_charge",
            session_id=session_id,
            description="Session request",
        )

        remaining = int(tx.execute("SELECT credits FROM users WHERE id = ?", [client.id])[0]["credits"])
        session = _row_to_session(_fetch_session(tx, session_id))

    logger.info(f"Session {session_id} requested by {client.id} (cost {credits_cost})")
    return session, remaining


async def transition_session(
    session_id: str,
    target: str,
    actor_id: Optional[str] = None,
) -> SessionRequest:
    """Move a session to `target` and apply its side effects.

    Rejection refunds the stored credits_cost to the client. Dispute only
    changes the status; its economic resolution is not decided yet.

    Raises:
        InvalidStatusError: target is not a requestable status
        NotFoundError: unknown session
        PermissionDeniedError: actor is not a participant, or not the side
            allowed to request `target` (accept/reject: expert, dispute: client)
        IllegalTransitionError: target not reachable from the current status
    """
    validate_target(target)

    now = datetime.now(timezone.utc).isoformat()

    with atomic() as tx:
        row = _fetch_session(tx, session_id)
        if row is None:
            raise NotFoundError("Session not found")

        if actor_id is not None:
            check_actor(row, target, actor_id)

        current = row["status"]
        check_transition(current, target)

        completed_at = now if target == "completed" else None
        tx.execute(
            """
            UPDATE sessions SET status = ?, completed_at = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            [target, completed_at, now, session_id, current],
        )
        if tx.changes == 0:
            raise IllegalTransitionError(current, target)

        if target == "rejected":
            apply_entry(
                tx, row["client_id"], int(row["credits_cost"]), "session_refund",
                session_id=session_id,
                description="Session rejected",
            )

        session = _row_to_session(_fetch_session(tx, session_id))

    logger.info(f"Session {session_id} transitioned: {current} -> {target}")
    return session


async def accept_session(session_id: str, actor_id: Optional[str] = None) -> SessionRequest:
    return await transition_session(session_id, "accepted", actor_id)


async def reject_session(session_id: str, actor_id: Optional[str] = None) -> SessionRequest:
    return await transition_session(session_id, "rejected", actor_id)


async def complete_session(session_id: str, actor_id: Optional[str] = None) -> SessionRequest:
    return await transition_session(session_id, "completed", actor_id)


async def dispute_session(session_id: str, actor_id: Optional[str] = None) -> SessionRequest:
    return await transition_session(session_id, "disputed", actor_id)


async def list_client_sessions(user_id: str) -> list[SessionRequest]:
    """Sessions requested by a client, newest first."""
    with atomic() as tx:
        rows = tx.execute(
            """
            SELECT s.*, e.name AS expert_name, e.service AS expert_service
            FROM sessions s
            JOIN experts e ON s.expert_id = e.id
            WHERE s.client_id = ?
            ORDER BY s.created_at DESC, s.rowid DESC
            """,
            [user_id],
        )
    return [_row_to_session(row) for row in rows]


async def list_expert_sessions(user_id: str) -> list[SessionRequest]:
    """Sessions addressed to the expert profile owned by `user_id`, newest first."""
    with atomic() as tx:
        rows = tx.execute(
            """
            SELECT s.*, e.name AS expert_name, e.service AS expert_service,
                   u.display_name AS client_name
            FROM sessions s
            JOIN experts e ON s.expert_id = e.id
            JOIN users u ON s.client_id = u.id
            WHERE e.user_id = ?
            ORDER BY s.created_at DESC, s.rowid DESC
            """,
            [user_id],
        )
    return [_row_to_session(row) for row in rows]
