"""
Engine Settings

Centralized configuration for the judging engine.
All values are loaded from environment variables (.env supported).
"""
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_optional_int_env(key: str) -> Optional[int]:
    """Get an optional integer; empty or missing means None."""
    value = os.getenv(key, "").strip()
    return int(value) if value else None


class Settings:
    """
    Runtime settings for the engine.

    To add a new setting:
    1. Add it here as a class attribute
    2. Load it from an environment variable with a sane default
    3. Read it through the module-level `settings` instance
    """

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./rapbattle.db")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    ALLOWED_ORIGINS: List[str] = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]

    # Ad-hoc challenge matches live in one synthetic tournament
    CHALLENGE_TOURNAMENT_ID: Optional[int] = get_optional_int_env("CHALLENGE_TOURNAMENT_ID")

    # Scoring
    SCORE_TIE_TOLERANCE: float = float(os.getenv("SCORE_TIE_TOLERANCE", "1e-6"))
    RUBRIC_SCALE_MAX: float = float(os.getenv("RUBRIC_SCALE_MAX", "100"))
    POINTS_MAX: float = float(os.getenv("POINTS_MAX", "100"))
    QUALIFIER_PASS_THRESHOLD: float = float(os.getenv("QUALIFIER_PASS_THRESHOLD", "50"))

    # Bracket rounds mark non-winners eliminated on finalize
    ELIMINATE_BRACKET_LOSERS: bool = get_bool_env("ELIMINATE_BRACKET_LOSERS", True)

    # Judge queries
    JUDGE_AVAILABLE_LIMIT: int = int(os.getenv("JUDGE_AVAILABLE_LIMIT", "20"))
    JUDGE_HISTORY_LIMIT: int = int(os.getenv("JUDGE_HISTORY_LIMIT", "50"))

    @classmethod
    def is_sqlite(cls) -> bool:
        return "sqlite" in cls.DATABASE_URL.lower()


settings = Settings()
