"""
SimpleScrum Configuration

Pydantic-backed configuration loaded from environment variables.
Uses SIMPLESCRUM_ prefix for all environment variables.
"""

import os
import threading
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from simplescrum.errors import ConfigError


class Config(BaseModel):
    """
    Pydantic-backed configuration loaded from environment variables.

    Key env vars:
    - SIMPLESCRUM_DB_PATH (default: .simplescrum.sqlite)
    - SIMPLESCRUM_PERSISTENCE (sqlite | memory, default: sqlite)
    - SIMPLESCRUM_ENV (default: local)
    - SIMPLESCRUM_LOG_LEVEL (default: INFO)
    - SIMPLESCRUM_SPRINT_LENGTH_DAYS (default: 14)
    - SIMPLESCRUM_RELEASE_INCOMPLETE_ON_CLOSE (default: false)
    - SIMPLESCRUM_ALLOW_PARALLEL_SPRINTS (default: false)
    """

    # Storage
    db_path: Path = Field(default=Path(".simplescrum.sqlite"))
    persistence_backend: Literal["sqlite", "memory"] = Field(default="sqlite")

    # Environment
    environment: str = Field(default="local")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    local_owner: str = Field(default="local")

    # Planning
    sprint_length_days: int = Field(default=14, ge=1)
    default_team_capacity: int = Field(default=14, ge=1)
    allow_parallel_sprints: bool = Field(default=False)
    carry_retrospective_actions: bool = Field(default=True)

    # Closing
    release_incomplete_on_close: bool = Field(default=False)

    # Persistence retry queue
    persistence_max_attempts: int = Field(default=3, ge=1)
    persistence_retry_delay: float = Field(default=0.2, ge=0.0)

    # Identity
    password_iterations: int = Field(default=240_000, ge=1)
    min_password_length: int = Field(default=6, ge=1)

    # API / web
    cors_allow_origins: List[str] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_ephemeral(self) -> bool:
        """Check if sessions are kept in memory only."""
        return self.persistence_backend == "memory"


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _parse_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    if value.strip() == "*":
        return ["*"]
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", metadata={"env": name}) from exc


def _parse_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}", metadata={"env": name}) from exc


def load_config() -> Config:
    """
    Load SimpleScrum configuration from environment.

    Environment variables use the SIMPLESCRUM_ prefix.
    """
    env = os.environ.get("SIMPLESCRUM_ENV", "local")
    cors = _parse_csv(os.environ.get("SIMPLESCRUM_CORS_ORIGINS"))
    if not cors and env == "local":
        cors = ["*"]
    backend = os.environ.get("SIMPLESCRUM_PERSISTENCE", "sqlite").strip().lower()
    if backend not in ("sqlite", "memory"):
        raise ConfigError(
            f"SIMPLESCRUM_PERSISTENCE must be 'sqlite' or 'memory', got {backend!r}",
            metadata={"env": "SIMPLESCRUM_PERSISTENCE"},
        )
    return Config(
        # Storage
        db_path=Path(os.environ.get("SIMPLESCRUM_DB_PATH", ".simplescrum.sqlite")).expanduser(),
        persistence_backend=backend,

        # Environment
        environment=env,
        log_level=os.environ.get("SIMPLESCRUM_LOG_LEVEL", "INFO"),
        log_json=_parse_bool(os.environ.get("SIMPLESCRUM_LOG_JSON")),
        local_owner=os.environ.get("SIMPLESCRUM_LOCAL_OWNER", "local"),

        # Planning
        sprint_length_days=_parse_int("SIMPLESCRUM_SPRINT_LENGTH_DAYS", 14),
        default_team_capacity=_parse_int("SIMPLESCRUM_DEFAULT_TEAM_CAPACITY", 14),
        allow_parallel_sprints=_parse_bool(os.environ.get("SIMPLESCRUM_ALLOW_PARALLEL_SPRINTS")),
        carry_retrospective_actions=_parse_bool(
            os.environ.get("SIMPLESCRUM_CARRY_RETROSPECTIVE_ACTIONS"), default=True
        ),

        # Closing
        release_incomplete_on_close=_parse_bool(os.environ.get("SIMPLESCRUM_RELEASE_INCOMPLETE_ON_CLOSE")),

        # Persistence
        persistence_max_attempts=_parse_int("SIMPLESCRUM_PERSISTENCE_MAX_ATTEMPTS", 3),
        persistence_retry_delay=_parse_float("SIMPLESCRUM_PERSISTENCE_RETRY_DELAY", 0.2),

        # Identity
        password_iterations=_parse_int("SIMPLESCRUM_PASSWORD_ITERATIONS", 240_000),
        min_password_length=_parse_int("SIMPLESCRUM_MIN_PASSWORD_LENGTH", 6),

        # API / web
        cors_allow_origins=cors,
    )


# Singleton config instance (lazy loaded)
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get or create the singleton config instance."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def _reset_config_for_tests() -> None:
    """Reset the global config cache (tests only)."""
    global _config
    with _config_lock:
        _config = None
