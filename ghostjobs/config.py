"""
Runtime configuration.

Values come from environment variables; a `.env` file in the working
directory is loaded first if present.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Storage
    db_path: Path = field(
        default_factory=lambda: Path(os.getenv("GHOSTJOBS_DB_PATH", "data/ghostjobs.db"))
    )

    # Job cache
    fresh_within_hours: float = field(
        default_factory=lambda: float(os.getenv("GHOSTJOBS_FRESH_WITHIN_HOURS", "24"))
    )
    update_history_limit: int = field(
        default_factory=lambda: int(os.getenv("GHOSTJOBS_UPDATE_HISTORY_LIMIT", "50"))
    )

    # Admission control
    initial_tokens: int = field(
        default_factory=lambda: int(os.getenv("GHOSTJOBS_INITIAL_TOKENS", "3"))
    )
    atomic_admission: bool = field(
        default_factory=lambda: _env_bool("GHOSTJOBS_ATOMIC_ADMISSION", "true")
    )

    # Change detection / NLP
    simhash_threshold: int = field(
        default_factory=lambda: int(os.getenv("GHOSTJOBS_SIMHASH_THRESHOLD", "10"))
    )
    nlp_max_chars: int = field(
        default_factory=lambda: int(os.getenv("GHOSTJOBS_NLP_MAX_CHARS", "20000"))
    )

    # Source adapters
    request_timeout: int = field(
        default_factory=lambda: int(os.getenv("GHOSTJOBS_REQUEST_TIMEOUT", "15"))
    )

    log_level: str = field(
        default_factory=lambda: os.getenv("GHOSTJOBS_LOG_LEVEL", "INFO")
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Load `.env` and build settings from the resulting environment."""
        load_env()
        return cls()
