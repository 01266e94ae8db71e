import contextlib
import io
import json
import shlex
from pathlib import Path

import pytest

from syncmaps.cli import app
from syncmaps.contracts.error import BadInputError


def run_cli(cmd: str):
    argv = shlex.split(cmd)
    stdout = io.StringIO()
    stderr = io.StringIO()
    try:
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            try:
                code = app.main(argv)
            except SystemExit as exc:  # CLI may call sys.exit
                code = exc.code if isinstance(exc.code, int) else 1
    finally:
        app.OUTPUT_JSON = False
        app.set_app_config(app.AppConfig())
    return code, stdout.getvalue().strip(), stderr.getvalue().strip()


def parse_error(stderr: str) -> dict:
    if not stderr.strip():
        return {}
    return json.loads(stderr.splitlines()[-1])


def test_run_csv_missing_file_returns_io(tmp_path: Path) -> None:
    code, _, err = run_cli(f"run-csv --csv {tmp_path / 'missing.csv'}")
    env = parse_error(err)
    assert code == 5
    assert env.get("error") in {"IO", "FileNotFound"}


def test_run_csv_bad_header_returns_badinput(tmp_path: Path) -> None:
    bad = tmp_path / "bad.csv"
    bad.write_text("nope,missing\n", encoding="utf-8")
    code, _, err = run_cli(f"run-csv --csv {bad}")
    env = parse_error(err)
    assert code == 2
    assert env.get("error") == "BadInput"
    assert "header" in env.get("detail", "").lower()
    assert env.get("hint")


def test_run_csv_put_missing_value_reports_line(workload_csv) -> None:
    bad = workload_csv(["put,1,"])
    code, _, err = run_cli(f"run-csv --csv {bad}")
    env = parse_error(err)
    assert code == 2
    assert env.get("error") == "BadInput"
    assert "missing value" in env.get("detail", "").lower()
    assert "line 2" in env.get("detail", "").lower()


def test_run_csv_missing_key_reports_line(workload_csv) -> None:
    bad = workload_csv(["put,1,a", "get,,"])
    code, _, err = run_cli(f"run-csv --csv {bad}")
    env = parse_error(err)
    assert code == 2
    assert "missing key at line 3" in env.get("detail", "").lower()


def test_run_csv_row_limit(workload_csv) -> None:
    limited = workload_csv(["put,1,1", "get,1,"])
    code, _, err = run_cli(f"run-csv --csv {limited} --csv-max-rows 1")
    env = parse_error(err)
    assert code == 2
    assert env.get("error") == "BadInput"
    assert "row limit" in env.get("detail", "").lower()


def test_run_csv_unknown_op(workload_csv) -> None:
    bad = workload_csv(["upsert,1,1"])
    code, _, err = run_cli(f"run-csv --csv {bad}")
    env = parse_error(err)
    assert code == 2
    assert "unknown op" in env.get("detail", "").lower()


def test_run_csv_non_integer_key(workload_csv) -> None:
    bad = workload_csv(["put,abc,1"])
    code, _, err = run_cli(f"run-csv --csv {bad}")
    env = parse_error(err)
    assert code == 2
    assert "not an integer" in env.get("detail", "")
    assert "--keys str" in env.get("hint", "")


def test_run_csv_tree_summary_json(workload_csv) -> None:
    path = workload_csv(["put,10,a", "put,20,b", "put,30,c", "get,20,", "del,10,", "del,99,"])
    code, out, _ = run_cli(f"--json run-csv --csv {path}")
    assert code == 0
    payload = json.loads(out)
    assert payload["ok"] is True
    assert payload["command"] == "run-csv"
    assert payload["schema"] == "syncmaps.summary.v1"
    assert payload["structure"] == "tree"
    assert payload["ops_by_type"] == {"put": 3, "get": 1, "del": 2}
    assert payload["total_ops"] == 6
    assert payload["final_size"] == 2
    assert payload["height"] == 2


def test_run_csv_table_summary_text(workload_csv) -> None:
    rows = [f"put,K{i},{i}" for i in range(13)]
    path = workload_csv(rows)
    code, out, _ = run_cli(f"--structure table --keys str run-csv --csv {path}")
    assert code == 0
    assert "structure=table keys=str" in out
    assert "size=13" in out
    assert "capacity=32" in out


def test_run_csv_uses_config_from_env(
    workload_csv, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    cfg_path = tmp_path / "syncmaps.toml"
    cfg_path.write_text("[table]\ninitial_capacity = 64\n", encoding="utf-8")
    monkeypatch.setenv("SYNCMAPS_CONFIG", str(cfg_path))
    path = workload_csv(["put,1,a"])
    code, out, _ = run_cli(f"--json --structure table run-csv --csv {path}")
    assert code == 0
    assert json.loads(out)["capacity"] == 64


def test_bad_config_raises_badinput(workload_csv, tmp_path: Path) -> None:
    cfg_path = tmp_path / "bad.toml"
    cfg_path.write_text("[table]\nload_factor = 2.0\n", encoding="utf-8")
    path = workload_csv(["put,1,a"])
    with pytest.raises(BadInputError):
        run_cli(f"--config {cfg_path} run-csv --csv {path}")


def test_verify_passes_for_both_structures(workload_csv) -> None:
    rows = [f"put,{i},{i}" for i in range(50)] + [f"del,{i}," for i in range(0, 50, 3)]
    path = workload_csv(rows)
    for structure in ("tree", "table"):
        code, out, _ = run_cli(f"--structure {structure} verify --csv {path} --verbose")
        assert code == 0
        lines = out.splitlines()
        assert lines[-1] == "OK"
        assert lines[0].startswith("Size=" if structure == "tree" else "Capacity=")


def test_verify_table_with_env_load_factor(workload_csv, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNCMAPS_TABLE_LOAD_FACTOR", "0.8")
    path = workload_csv([f"put,{i},{i}" for i in range(30)])
    code, out, _ = run_cli(f"--json --structure table verify --csv {path}")
    assert code == 0
    payload = json.loads(out)
    assert payload["ok"] is True
    assert payload["messages"] == []


def test_verify_failure_exits_one(workload_csv, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "verify_tree", lambda tree, verbose=False: (False, ["Root is not black"]))
    path = workload_csv(["put,1,a"])
    code, out, _ = run_cli(f"--json verify --csv {path}")
    assert code == 1
    payload = json.loads(out)
    assert payload["ok"] is False
    assert payload["messages"] == ["Root is not black"]


def test_render_tree_picture(workload_csv) -> None:
    path = workload_csv(["put,10,a", "put,20,b", "put,30,c"])
    code, out, _ = run_cli(f"render --csv {path}")
    assert code == 0
    assert out == "Red Black Tree - Size: 3\n  20B\n  / \\\n10R 30R"


def test_render_table_json(workload_csv) -> None:
    path = workload_csv(["put,2,b", "put,1,a"])
    code, out, _ = run_cli(f"--json --structure table render --csv {path}")
    assert code == 0
    payload = json.loads(out)
    assert payload["result"] == "[1=a, 2=b]"
    assert payload["lines"] == ["[1=a, 2=b]"]


def test_generate_then_run(tmp_path: Path) -> None:
    outfile = tmp_path / "gen.csv"
    code, out, _ = run_cli(
        f"--json generate-csv --outfile {outfile} --ops 200 --key-space 50 --seed 7"
    )
    assert code == 0
    assert json.loads(out)["outfile"] == str(outfile)
    lines = outfile.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "op,key,value"
    assert len(lines) == 201

    code, out, _ = run_cli(f"--json --structure table run-csv --csv {outfile}")
    assert code == 0
    assert json.loads(out)["total_ops"] == 200

    code, _, _ = run_cli(f"verify --csv {outfile}")
    assert code == 0


def test_generate_is_deterministic(tmp_path: Path) -> None:
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    for target in (first, second):
        code, _, _ = run_cli(f"--keys str generate-csv --outfile {target} --ops 50 --seed 3")
        assert code == 0
    assert first.read_text(encoding="utf-8") == second.read_text(encoding="utf-8")
    assert ",K" in first.read_text(encoding="utf-8")


def test_generate_rejects_bad_ratios(tmp_path: Path) -> None:
    code, _, err = run_cli(
        f"generate-csv --outfile {tmp_path / 'x.csv'} --ops 10 --del-ratio 0.8 --get-ratio 0.5"
    )
    assert code == 2
    assert parse_error(err).get("error") == "BadInput"
