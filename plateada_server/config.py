"""Server configuration using pydantic-settings."""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    app_name: str = "Magia Plateada"
    debug: bool = False
    log_level: str = "INFO"
    secret_key: str  # JWT signing key
    access_token_expire_days: int = 7
    bcrypt_rounds: int = 10

    # Database: sqlite:///path/to/file.db or libsql://<db>.turso.io
    database_url: str = "sqlite:///./plateada.db"
    turso_auth_token: str = ""
    database_timeout: float = 30.0

    # Credits
    welcome_credits: int = 3  # Granted to new clients only
    session_credit_cost: int = 1
    min_purchase_credits: int = 1
    max_purchase_credits: int = 50

    # Experts
    min_expert_age: int = 50
    urgent_window_days: int = 1

    # CORS
    allowed_origins: list[str] = ["http://localhost", "http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
