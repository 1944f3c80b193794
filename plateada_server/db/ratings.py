"""Ratings and the expert rating aggregate."""
import logging
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from plateada_server.errors import (
    DuplicateRatingError,
    PermissionDeniedError,
    SessionNotEligibleError,
    ValidationError,
)
from .connection import Transaction, atomic
from .models import Rating, RatingScores


logger = logging.getLogger(__name__)


def compute_aggregate(overall_scores: Iterable[int]) -> tuple[float, int]:
    """Mean of the overall scores rounded half-up to one decimal, and the count."""
    scores = [int(s) for s in overall_scores]
    if not scores:
        return 0.0, 0

    mean = Decimal(sum(scores)) / Decimal(len(scores))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)), len(scores)


def _row_to_rating(row: dict) -> Rating:
    return Rating(
        id=row["id"],
        session_id=row["session_id"],
        rater_id=row["rater_id"],
        rated_id=row["rated_id"],
        quality=int(row["quality"]),
        clarity=int(row["clarity"]),
        punctuality=int(row["punctuality"]),
        overall=int(row["overall"]),
        comment=row.get("comment") or "",
        created_at=datetime.fromisoformat(row["created_at"]),
    )


async def recompute_expert_rating(rated_id: str, tx: Optional[Transaction] = None) -> tuple[float, int]:
    """Recompute an expert's rating from every rating they have received.

    A full reduction, so replaying it over the same ratings is a no-op.
    """
    with atomic(tx) as cur:
        rows = cur.execute("SELECT overall FROM ratings WHERE rated_id = ?", [rated_id])
        rating, total = compute_aggregate(row["overall"] for row in rows)
        cur.execute(
            "UPDATE experts SET rating = ?, total_ratings = ?, updated_at = ? WHERE user_id = ?",
            [rating, total, datetime.now(timezone.utc).isoformat(), rated_id],
        )

    logger.info(f"Rating for expert user {rated_id} recomputed: {rating} ({total})")
    return rating, total


async def submit_rating(
    session_id: str,
    rater_id: str,
    rated_id: str,
    scores: RatingScores,
    comment: str = "",
) -> Rating:
    """Store a rating for a completed session and refresh the expert aggregate.

    Raises:
        SessionNotEligibleError: session missing or not completed
        PermissionDeniedError: rater did not take part in the session
        ValidationError: rated user is not the other participant
        DuplicateRatingError: rater already rated this session
    """
    now = datetime.now(timezone.utc).isoformat()
    rating_id = str(uuid.uuid4())

    with atomic() as tx:
        rows = tx.execute(
            """
            SELECT s.status, s.client_id, e.user_id AS expert_user_id
            FROM sessions s
            JOIN experts e ON s.expert_id = e.id
            WHERE s.id = ?
            """,
            [session_id],
        )
        if not rows or rows[0]["status"] != "completed":
            raise SessionNotEligibleError("The session does not exist or is not completed")

        participants = (rows[0]["client_id"], rows[0]["expert_user_id"])
        if rater_id not in participants:
            raise PermissionDeniedError("Only session participants can rate it")
        if rated_id not in participants or rated_id == rater_id:
            raise ValidationError(
                "The rated user must be the other session participant",
                fields=["ratedId"],
            )

        # The write lock is held from BEGIN IMMEDIATE, so no rating can slip in
        # between this check and the insert.
        if tx.execute(
            "SELECT id FROM ratings WHERE session_id = ? AND rater_id = ?",
            [session_id, rater_id],
        ):
            raise DuplicateRatingError("This session was already rated by this user")

        tx.execute(
            """
            INSERT INTO ratings (id, session_id, rater_id, rated_id, quality, clarity,
                                 punctuality, overall, comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [rating_id, session_id, rater_id, rated_id, scores.quality, scores.clarity,
             scores.punctuality, scores.overall, comment or "", now],
        )

        await recompute_expert_rating(rated_id, tx=tx)

    return Rating(
        id=rating_id,
        session_id=session_id,
        rater_id=rater_id,
        rated_id=rated_id,
        quality=scores.quality,
        clarity=scores.clarity,
        punctuality=scores.punctuality,
        overall=scores.overall,
        comment=comment or "",
        created_at=datetime.fromisoformat(now),
    )


async def list_ratings_for(rated_id: str) -> list[Rating]:
    """Ratings received by a user, newest first."""
    with atomic() as tx:
        rows = tx.execute(
            "SELECT * FROM ratings WHERE rated_id = ? ORDER BY created_at DESC, rowid DESC",
            [rated_id],
        )
    return [_row_to_rating(row) for row in rows]
