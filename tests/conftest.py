import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if SRC.exists():
    sys.path.insert(0, str(SRC))

# Register shared Hypothesis profiles for deterministic CI runs and fast local loops.
from tests.util import hypothesis_profiles  # noqa: E402,F401  pylint: disable=unused-import

CONFIG_ENV_VARS = (
    "SYNCMAPS_CONFIG",
    "SYNCMAPS_TABLE_INITIAL_CAPACITY",
    "SYNCMAPS_TABLE_LOAD_FACTOR",
    "SYNCMAPS_TABLE_GROW_FACTOR",
    "SYNCMAPS_TABLE_LARGE_WARN_THRESHOLD",
    "SYNCMAPS_CURSOR_FAIL_FAST",
)


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer shell overrides out of the test run."""

    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workload_csv(tmp_path: Path):
    """Write ``rows`` under an ``op,key,value`` header and return the path."""

    def _write(rows: list[str], name: str = "workload.csv") -> Path:
        path = tmp_path / name
        path.write_text("op,key,value\n" + "".join(f"{row}\n" for row in rows), encoding="utf-8")
        return path

    return _write


def pytest_configure(config: pytest.Config) -> None:
    """Ensure custom marks remain registered even when pytest.ini isn't picked up."""
    config.addinivalue_line("markers", "slow: multi-threaded stress tests")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    if os.getenv("SYNCMAPS_SKIP_SLOW") != "1":
        return

    skip_slow = pytest.mark.skip(reason="SYNCMAPS_SKIP_SLOW=1")
    for item in items:
        if item.get_closest_marker("slow") is not None:
            item.add_marker(skip_slow)
