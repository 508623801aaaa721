"""
End-to-end CLI tests using Typer's ``CliRunner``.

Each test writes a TOML config pointing at a temp-dir database. Logging
setup is stubbed out so the root logger is left alone.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from metro_induction import cli

SAMPLE_FLEET = Path(__file__).parent.parent / "config" / "fleet" / "sample_fleet.json"

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setattr(cli, "_configure_logging", lambda config: None)
    path = tmp_path / "test.toml"
    path.write_text(
        "\n".join([
            "[database]",
            f'db_path = "{(tmp_path / "cli.db").as_posix()}"',
            "wal_mode = false",
            "[data]",
            f'fleet_seed_file = "{SAMPLE_FLEET.as_posix()}"',
            f'processed_dir = "{(tmp_path / "processed").as_posix()}"',
            f'output_dir = "{(tmp_path / "outputs").as_posix()}"',
        ]),
        encoding="utf-8",
    )
    return path


def _invoke(*args: str):
    return runner.invoke(cli.app, list(args))


class TestCli:
    def test_init_db(self, config_file):
        result = _invoke("init-db", "--config", str(config_file))
        assert result.exit_code == 0, result.output
        assert "[OK] Database ready." in result.output

    def test_validate_config(self, config_file):
        result = _invoke("validate-config", "--config", str(config_file))
        assert result.exit_code == 0, result.output
        assert "maintenance<50 standby<70" in result.output

    def test_missing_config_exits_1(self, tmp_path):
        result = _invoke("validate-config", "--config", str(tmp_path / "nope.toml"))
        assert result.exit_code == 1

    def test_seed_recommend_induct_show(self, config_file):
        assert _invoke("seed-fleet", "--config", str(config_file)).exit_code == 0
        assert _invoke("seed-params", "--config", str(config_file), "--actor", "admin").exit_code == 0

        rec = _invoke("recommend", "--date", "2026-10-17", "--config", str(config_file))
        assert rec.exit_code == 0, rec.output
        assert "KM-003" in rec.output
        assert "maintenance" in rec.output

        ind = _invoke(
            "induct", "--date", "2026-10-17", "--no-reports",
            "--config", str(config_file), "--actor", "ops-supervisor",
        )
        assert ind.exit_code == 0, ind.output
        assert "Decisions committed: 5" in ind.output

        show = _invoke("show-plan", "--date", "2026-10-17", "--config", str(config_file))
        assert show.exit_code == 0, show.output
        assert "approved by ops-supervisor" in show.output

    def test_bad_date_exits_1(self, config_file):
        result = _invoke("recommend", "--date", "17/10/2026", "--config", str(config_file))
        assert result.exit_code == 1

    def test_seed_missing_file_exits_1(self, config_file, tmp_path):
        result = _invoke(
            "seed-fleet", "--file", str(tmp_path / "missing.json"), "--config", str(config_file)
        )
        assert result.exit_code == 1

    def test_tune(self, config_file):
        _invoke("seed-fleet", "--config", str(config_file))
        result = _invoke("tune", "--lookback-days", "7", "--config", str(config_file))
        assert result.exit_code == 0, result.output
        assert "penalty_high_priority_jobs   = 25" in result.output

    def test_alerts_list_and_resolve(self, config_file):
        _invoke("seed-fleet", "--config", str(config_file))
        listed = _invoke("alerts", "--config", str(config_file))
        assert listed.exit_code == 0
        assert listed.output.splitlines()[0].strip().startswith("*[")
        assert "CRITICAL" in listed.output.splitlines()[0]

        assert _invoke("alerts", "--resolve", "1", "--config", str(config_file)).exit_code == 0
        assert _invoke("alerts", "--resolve", "999", "--config", str(config_file)).exit_code == 1

    def test_fleet_stats(self, config_file):
        _invoke("seed-fleet", "--config", str(config_file))
        result = _invoke("fleet-stats", "--config", str(config_file))
        assert "Total:          8" in result.output
        assert "Active:         5" in result.output
