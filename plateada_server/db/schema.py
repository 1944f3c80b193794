"""Database schema."""
import logging

from .connection import get_db


logger = logging.getLogger(__name__)


SCHEMA = [
    # Users table. credits is a projection of credit_transactions.
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        display_name TEXT NOT NULL,
        role TEXT NOT NULL CHECK (role IN ('client', 'expert')),
        credits INTEGER NOT NULL DEFAULT 0 CHECK (credits >= 0),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,

    # Expert profiles, one per expert user
    """
    CREATE TABLE IF NOT EXISTS experts (
        id TEXT PRIMARY KEY,
        user_id TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        age INTEGER NOT NULL,
        service TEXT NOT NULL,
        service_category TEXT NOT NULL DEFAULT 'otro',
        experience TEXT NOT NULL,
        modality TEXT NOT NULL CHECK (modality IN ('presencial', 'remoto', 'ambos')),
        zone TEXT NOT NULL,
        schedule TEXT NOT NULL,
        contact TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'available'
            CHECK (status IN ('available', 'busy', 'unavailable')),
        avatar TEXT NOT NULL DEFAULT '',
        rating REAL NOT NULL DEFAULT 0,
        total_ratings INTEGER NOT NULL DEFAULT 0,
        membership_type TEXT NOT NULL DEFAULT 'free'
            CHECK (membership_type IN ('free', 'premium')),
        is_featured INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    """,

    # Session requests
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        client_id TEXT NOT NULL,
        expert_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'accepted', 'rejected', 'completed', 'disputed', 'expired')),
        requested_date TEXT NOT NULL,
        requested_time TEXT NOT NULL DEFAULT '',
        requested_duration TEXT NOT NULL DEFAULT '1 hora',
        credits_cost INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        completed_at TEXT,
        FOREIGN KEY (client_id) REFERENCES users(id),
        FOREIGN KEY (expert_id) REFERENCES experts(id)
    )
    """,

    # Append-only credit ledger
    """
    CREATE TABLE IF NOT EXISTS credit_transactions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        amount INTEGER NOT NULL,
        transaction_type TEXT NOT NULL
            CHECK (transaction_type IN ('welcome', 'purchase', 'session_charge', 'session_refund')),
        session_id TEXT,
        description TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id),
        FOREIGN KEY (session_id) REFERENCES sessions(id)
    )
    """,

    # Ratings
    """
    CREATE TABLE IF NOT EXISTS ratings (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        rater_id TEXT NOT NULL,
        rated_id TEXT NOT NULL,
        quality INTEGER NOT NULL CHECK (quality BETWEEN 1 AND 5),
        clarity INTEGER NOT NULL CHECK (clarity BETWEEN 1 AND 5),
        punctuality INTEGER NOT NULL CHECK (punctuality BETWEEN 1 AND 5),
        overall INTEGER NOT NULL CHECK (overall BETWEEN 1 AND 5),
        comment TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        UNIQUE (session_id, rater_id),
        FOREIGN KEY (session_id) REFERENCES sessions(id),
        FOREIGN KEY (rater_id) REFERENCES users(id),
        FOREIGN KEY (rated_id) REFERENCES users(id)
    )
    """,

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_experts_listing ON experts(status, zone, modality)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_client_id ON sessions(client_id)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_expert_id ON sessions(expert_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_user_id ON credit_transactions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_ratings_rated_id ON ratings(rated_id)",
]


async def init_db():
    """Initialize database schema."""
    with get_db().transaction() as tx:
        for statement in SCHEMA:
            tx.execute(statement)
    logger.info("Database schema ready")
