from __future__ import annotations

from pathlib import Path

import pytest

from syncmaps.config import AppConfig, TablePolicy, load_app_config
from syncmaps.contracts.error import BadInputError


def test_default_config_validates() -> None:
    cfg = load_app_config(None)
    assert cfg.table.initial_capacity == 16
    assert cfg.table.load_factor == pytest.approx(0.75)
    assert cfg.table.grow_factor == 2
    assert cfg.table.large_table_warn_threshold == 1_000_000
    assert cfg.cursor.fail_fast is True


def test_load_from_toml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text(
        """
[table]
initial_capacity = 64
load_factor = 0.5
grow_factor = 4
large_table_warn_threshold = 5000

[cursor]
fail_fast = false
""",
        encoding="utf-8",
    )
    cfg = load_app_config(str(cfg_path))
    assert cfg.table.initial_capacity == 64
    assert cfg.table.load_factor == pytest.approx(0.5)
    assert cfg.table.grow_factor == 4
    assert cfg.table.large_table_warn_threshold == 5000
    assert cfg.cursor.fail_fast is False

    # env override takes precedence
    monkeypatch.setenv("SYNCMAPS_TABLE_INITIAL_CAPACITY", "8")
    monkeypatch.setenv("SYNCMAPS_TABLE_LOAD_FACTOR", "0.9")
    monkeypatch.setenv("SYNCMAPS_CURSOR_FAIL_FAST", "yes")
    cfg_env = AppConfig.load(cfg_path)
    assert cfg_env.table.initial_capacity == 8
    assert cfg_env.table.load_factor == pytest.approx(0.9)
    assert cfg_env.table.grow_factor == 4
    assert cfg_env.cursor.fail_fast is True


@pytest.mark.parametrize(
    "body",
    [
        "[table]\nload_factor = 1.5\n",
        "[table]\ninitial_capacity = 12\n",
        "[table]\ngrow_factor = 3\n",
        "[table]\nlarge_table_warn_threshold = -1\n",
        "[table]\nbuckets = 4\n",
        "[cursor]\nfail_fast = \"maybe\"\n",
        "[cursor]\nstrict = true\n",
        "table = 3\n",
        "[table\n",
    ],
)
def test_invalid_documents_raise(tmp_path: Path, body: str) -> None:
    bad_path = tmp_path / "bad.toml"
    bad_path.write_text(body, encoding="utf-8")
    with pytest.raises(BadInputError):
        load_app_config(str(bad_path))


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(BadInputError, match="not found"):
        load_app_config(str(tmp_path / "absent.toml"))


def test_bad_env_override_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNCMAPS_TABLE_GROW_FACTOR", "two")
    with pytest.raises(BadInputError, match="SYNCMAPS_TABLE_GROW_FACTOR"):
        load_app_config(None)


def test_env_override_is_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNCMAPS_TABLE_INITIAL_CAPACITY", "100")
    with pytest.raises(BadInputError, match="power of two"):
        load_app_config(None)


def test_bool_strings_are_coerced() -> None:
    cfg = AppConfig.from_dict({"cursor": {"fail_fast": "off"}})
    assert cfg.cursor.fail_fast is False


def test_table_policy_validate_direct() -> None:
    TablePolicy().validate()
    with pytest.raises(BadInputError):
        TablePolicy(load_factor=0.0).validate()
