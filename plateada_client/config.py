"""Configuration management for the Magia Plateada console client."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PLATEADA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    server_url: str = "http://localhost:8000"
    request_timeout: float = 30.0

    # Simulated credit packs offered when a request cannot be paid
    credit_packs: list[int] = [3, 5, 10]

    # Must match the server's SESSION_CREDIT_COST and MIN_EXPERT_AGE
    session_credit_cost: int = 1
    min_expert_age: int = 50


def get_settings() -> Settings:
    """Get client settings."""
    return Settings()
