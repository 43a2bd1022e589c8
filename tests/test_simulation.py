"""
Tests for court assembly, YAML simulations and the CLI (src/court.py, src/cli.py)
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import cli
from conftest import TOKEN
from court import create_court, run_simulation, run_simulation_file
from court_clock import SimulatedChain
from court_config import CourtConfig
from court_exceptions import BadFirstTermStartTime, InvalidConfig

SIMULATION_FILE = os.path.join(os.path.dirname(__file__), "..", "config", "simulation.yaml")


class TestCreateCourt:
    """Tests for court assembly."""

    def test_first_term_follows_chain_time(self):
        court = create_court(CourtConfig(term_duration=60), SimulatedChain(timestamp=1000))

        assert court.clock.get_term(0).start_time == 1000
        assert court.config.first_term_start_time == 1060
        assert court.get_info()["disputes"] == 0

    def test_explicit_first_term_in_the_past_fails(self):
        config = CourtConfig(term_duration=60, first_term_start_time=500)

        with pytest.raises(BadFirstTermStartTime):
            create_court(config, SimulatedChain(timestamp=1000))

    def test_invalid_config_fails(self):
        with pytest.raises(InvalidConfig):
            create_court(CourtConfig(term_duration=0))

    def test_advance_terms(self, court):
        assert court.advance_terms(2) == 2
        assert court.clock.get_term_randomness(2)


class TestRunSimulation:
    """Tests for scripted draft simulations."""

    def test_rounds_resume_until_drafted(self):
        report = run_simulation({
            "court": {"term_duration": 60, "max_jurors_per_draft_batch": 4},
            "jurors": [{"address": f"0x{i}", "stake": 1000 * TOKEN} for i in range(4)],
            "disputes": [{"id": 0, "jurors": 10}],
            "max_terms": 5,
        })

        round_report = report["rounds"][0]
        assert round_report["drafted"]
        assert round_report["delayed_terms"] == 2
        assert sum(j["weight"] for j in round_report["jurors"]) == 10
        assert [d["accepted_count"] for d in report["drafts"]] == [4, 4, 2]

    def test_simulation_file(self):
        report = run_simulation_file(SIMULATION_FILE)

        assert {r["dispute_id"] for r in report["rounds"]} == {0, 1}
        assert all(r["drafted"] for r in report["rounds"])
        assert report["court"]["registry"]["jurors"] == 8


class TestCli:
    """Tests for CLI commands."""

    @pytest.fixture(autouse=True)
    def keep_test_logging(self, monkeypatch):
        monkeypatch.setattr("monitoring.configure_logging", lambda **kwargs: None)

    def test_simulate_writes_report(self, tmp_path, monkeypatch):
        output = tmp_path / "report.json"
        monkeypatch.setattr(sys, "argv", ["stakecourt", "simulate", "--config", SIMULATION_FILE,
                                          "--output", str(output)])

        with pytest.raises(SystemExit) as exc:
            cli.main()

        assert exc.value.code == 0
        assert len(json.loads(output.read_text())["rounds"]) == 2

    def test_simulate_invalid_file(self, tmp_path, monkeypatch):
        path = tmp_path / "bad.yaml"
        path.write_text("")
        monkeypatch.setattr(sys, "argv", ["stakecourt", "simulate", "--config", str(path)])

        with pytest.raises(SystemExit) as exc:
            cli.main()

        assert exc.value.code == 1

    def test_info(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["stakecourt", "info"])

        with pytest.raises(SystemExit) as exc:
            cli.main()

        assert exc.value.code == 0
        assert "draft_lock_amount" in capsys.readouterr().out

    def test_no_command_prints_help(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["stakecourt"])

        with pytest.raises(SystemExit) as exc:
            cli.main()

        assert exc.value.code == 1
