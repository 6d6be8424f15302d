"""Application configuration loaded from environment variables."""

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_port: int = 8050
    data_dir: Path = Path("/app/data")
    log_level: str = "info"
    max_upload_size_mb: int = 50

    # Empty means the SQLite file under data_dir
    database_url: str = ""

    # Bearer token verification (all requests are rejected while jwt_secret is empty)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Optional JSON file replacing the built-in column alias table
    export_schema_path: Path | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only HMAC algorithms are supported since tokens are signed with a shared secret."""
        if v not in ("HS256", "HS384", "HS512"):
            raise ValueError(f"JWT_ALGORITHM must be one of HS256, HS384, HS512, got '{v}'")
        return v

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "analytics.db"

    @property
    def resolved_database_url(self) -> str:
        return self.database_url or f"sqlite:///{self.db_path}"

    @property
    def auth_enabled(self) -> bool:
        """Return True if bearer tokens can be verified."""
        return bool(self.jwt_secret)


def warn_if_auth_disabled(s: "Settings") -> None:
    """Log a startup warning when no JWT secret is configured."""
    if not s.auth_enabled:
        logging.getLogger(__name__).warning(
            "JWT_SECRET is not set. Every authenticated route will answer 401 "
            "until a secret is configured."
        )


settings = Settings()
