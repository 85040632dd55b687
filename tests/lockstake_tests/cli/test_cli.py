"""Tests for the lockstake command line interface."""
import json
import logging

import pytest
from click.testing import CliRunner

from lockstake.cli.main import cli
from lockstake.core.simulation import ether

SOLO = """
name: solo
users:
  alice: 1000
actions:
  - offset: -86500
    do:
      - {user: alice, action: deposit, amount: 100}
expected:
  alice: 100
"""


@pytest.fixture(autouse=True)
def reset_package_logger():
    """The CLI attaches handlers to runner streams that close after each invoke."""
    yield
    logger = logging.getLogger("lockstake")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def _invoke(args, env=None):
    runner = CliRunner()
    return runner.invoke(cli, ["--log-level", "ERROR", *args], env=env or {}, obj={})


class TestConfigShow:
    def test_json_output_reflects_environment(self):
        result = _invoke(["--json-output", "config", "show"], env={"LOCKSTAKE_FEE_BPS": "400"})

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["fee_bps"] == 400
        assert data["lock_tier"] == "two_weeks"

    def test_config_file_overrides_environment(self, tmp_path):
        path = tmp_path / "pool.yaml"
        path.write_text("pool:\n  fee_bps: 123\n")

        result = _invoke(
            ["--config", str(path), "--json-output", "config", "show"],
            env={"LOCKSTAKE_FEE_BPS": "400"},
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["fee_bps"] == 123

    def test_invalid_environment_fails(self):
        result = _invoke(["config", "show"], env={"LOCKSTAKE_FEE_BPS": "5000"})

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_quoted_fee_in_config_file_fails_cleanly(self, tmp_path):
        path = tmp_path / "pool.yaml"
        path.write_text('pool:\n  fee_bps: "400"\n')

        result = _invoke(["--config", str(path), "config", "show"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "fee_bps" in result.output

    def test_table_output(self):
        result = _invoke(["config", "show"])

        assert result.exit_code == 0, result.output
        assert "Lockstake Configuration" in result.output
        assert "fee_bps" in result.output


class TestSimulate:
    def test_json_report(self, tmp_path):
        path = tmp_path / "solo.yaml"
        path.write_text(SOLO)

        result = _invoke(["--json-output", "simulate", str(path)])

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["scenario"] == "solo"
        (alice,) = report["users"]
        assert alice["user"] == "alice"
        assert alice["reward"] == ether(172_800)
        assert alice["share_percent"] == 100.0
        assert alice["within_tolerance"] is True

    def test_no_settle_reports_nothing_realised(self, tmp_path):
        path = tmp_path / "solo.yaml"
        path.write_text(SOLO)

        result = _invoke(["--json-output", "simulate", "--no-settle", str(path)])

        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["total_rewards"] == 0
        assert report["users"][0]["within_tolerance"] is False

    def test_table_report_with_events(self, tmp_path):
        path = tmp_path / "solo.yaml"
        path.write_text(SOLO)

        result = _invoke(["simulate", "--events", str(path)])

        assert result.exit_code == 0, result.output
        assert "Rewards - solo" in result.output
        assert "Pool State" in result.output
        assert "Pool Events" in result.output

    def test_bad_scenario_fails(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("users:\n  alice: 1\nactions:\n  - offset: 0\n    do:\n      - {user: bob, action: claim}\n")

        result = _invoke(["simulate", str(path)])

        assert result.exit_code == 1
        assert "undeclared users" in result.output
