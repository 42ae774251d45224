import os
import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so `simplescrum` imports without installing.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from simplescrum.config import Config, _reset_config_for_tests  # noqa: E402
from simplescrum.services.base import ServiceContext  # noqa: E402
from simplescrum.services.store import EntityStore  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep tests away from the developer's SIMPLESCRUM_* settings and database."""
    for name in list(os.environ):
        if name.startswith("SIMPLESCRUM_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SIMPLESCRUM_DB_PATH", str(tmp_path / "simplescrum.sqlite"))
    _reset_config_for_tests()
    yield
    _reset_config_for_tests()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        db_path=tmp_path / "simplescrum.sqlite",
        persistence_backend="memory",
        persistence_retry_delay=0.0,
        password_iterations=1_000,
    )


@pytest.fixture
def context(config: Config) -> ServiceContext:
    return ServiceContext(config=config, session_id="test-session", owner_id="tester")


@pytest.fixture
def store() -> EntityStore:
    return EntityStore(owner_id="tester")
