"""Tests for the command-line interface."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from autoprint.cli import main, render_service_unit
from autoprint.config import AutoPrintConfig
from autoprint.exceptions import LedgerError
from autoprint.models import CycleStatus, CycleSummary


@pytest.fixture
def paths(isolated_defaults):
    """Default files in a temp folder, with logging setup disabled."""
    isolated_defaults["ledger"].parent.mkdir(parents=True, exist_ok=True)
    with patch("autoprint.cli.setup_logging"):
        yield isolated_defaults


@pytest.fixture
def configured(paths):
    """Write a usable config file."""
    AutoPrintConfig(caller_id="1234", device_name="Zebra").save(paths["config"])
    return paths


@pytest.fixture
def runner():
    return CliRunner()


class TestConfigureCommand:
    """Tests for 'autoprint configure'."""

    def test_updates_given_options(self, runner, paths):
        """Should save only the options that were passed."""
        result = runner.invoke(main, ["configure", "--caller", "1234", "--printer", "Zebra"])

        assert result.exit_code == 0
        config = AutoPrintConfig.load(paths["config"])
        assert config.caller_id == "1234"
        assert config.device_name == "Zebra"
        assert config.poll_interval == 30

    def test_save_path_enables_saving(self, runner, paths, tmp_path):
        """Should turn saving on when a folder is given."""
        result = runner.invoke(main, ["configure", "--save-path", str(tmp_path / "labels")])

        assert result.exit_code == 0
        assert AutoPrintConfig.load(paths["config"]).save_enabled is True

    def test_rejects_out_of_range_interval(self, runner, paths):
        """Should refuse intervals outside 1..3600."""
        result = runner.invoke(main, ["configure", "--interval", "0"])
        assert result.exit_code == 2

    def test_prompts_without_options(self, runner, paths):
        """Should ask for endpoint and caller id."""
        result = runner.invoke(main, ["configure"], input="https://labels.example.com\n9876\n")

        assert result.exit_code == 0
        config = AutoPrintConfig.load(paths["config"])
        assert config.endpoint_url == "https://labels.example.com"
        assert config.caller_id == "9876"


class TestStatusCommand:
    """Tests for 'autoprint status'."""

    def test_not_configured(self, runner, paths):
        """Should say the agent needs configuring."""
        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "NOT CONFIGURED" in result.output

    def test_shows_processed_count(self, runner, configured):
        """Should report how many labels were processed."""
        configured["ledger"].write_text("INV001.pdf\nINV002.pdf\n")

        result = runner.invoke(main, ["status"])

        assert "Processed labels: 2" in result.output
        assert "Caller id: ****34" in result.output


class TestPollCommand:
    """Tests for 'autoprint poll'."""

    def test_runs_one_cycle(self, runner, configured):
        """Should run a single cycle and stop the agent."""
        summary = CycleSummary(received=2, accepted=1, skipped=1, saved=1, printed=1)
        with patch("autoprint.cli.get_agent") as get_agent:
            get_agent.return_value.poll_now.return_value = summary
            result = runner.invoke(main, ["poll"])

        assert result.exit_code == 0
        assert "new 1, skipped 1" in result.output
        get_agent.return_value.stop.assert_called_once()

    def test_transport_error_exits_nonzero(self, runner, configured):
        """Should exit 1 when the endpoint could not be reached."""
        with patch("autoprint.cli.get_agent") as get_agent:
            get_agent.return_value.poll_now.return_value = CycleSummary(
                status=CycleStatus.TRANSPORT_ERROR
            )
            result = runner.invoke(main, ["poll"])

        assert result.exit_code == 1

    def test_broken_ledger_exits_nonzero(self, runner, configured):
        """Should explain a broken ledger instead of crashing."""
        with patch("autoprint.cli.get_agent", side_effect=LedgerError("unreadable")):
            result = runner.invoke(main, ["poll"])

        assert result.exit_code == 1
        assert "unreadable" in result.output

    def test_requires_configuration(self, runner, paths):
        """Should refuse to poll without settings."""
        result = runner.invoke(main, ["poll"])
        assert result.exit_code == 1


class TestTestCommand:
    """Tests for 'autoprint test'."""

    def test_reports_results(self, runner, configured):
        """Should print the connection test results."""
        with patch("autoprint.cli.get_agent") as get_agent:
            get_agent.return_value.test_connection.return_value = {
                "server": {"status": "ok", "message": "Connected (12 chars received)"},
                "printer": {"status": "ok", "message": "Printer: Zebra", "strategies": ["cups"]},
                "success": True,
            }
            result = runner.invoke(main, ["test"])

        assert result.exit_code == 0
        assert "+ Server: Connected" in result.output
        assert "Print methods: cups" in result.output


class TestHistoryAndLogs:
    """Tests for 'autoprint clear-history' and 'autoprint logs'."""

    def test_clear_history(self, runner, paths):
        """Should delete the ledger after confirmation."""
        paths["ledger"].write_text("INV001.pdf\n")

        result = runner.invoke(main, ["clear-history", "--yes"])

        assert result.exit_code == 0
        assert not paths["ledger"].exists()

    def test_clear_history_aborts_without_confirmation(self, runner, paths):
        """Should keep the ledger when the prompt is declined."""
        paths["ledger"].write_text("INV001.pdf\n")

        result = runner.invoke(main, ["clear-history"], input="n\n")

        assert result.exit_code == 1
        assert paths["ledger"].exists()

    def test_logs_empty(self, runner, paths):
        """Should say when there is nothing to show."""
        result = runner.invoke(main, ["logs"])
        assert "No log entries." in result.output

    def test_logs_tail(self, runner, paths):
        """Should print the most recent lines."""
        from autoprint.event_log import EventLog

        event_log = EventLog(paths["events"])
        for i in range(3):
            event_log.write(f"event {i}")

        result = runner.invoke(main, ["logs", "-n", "2"])

        assert "event 0" not in result.output
        assert "event 2" in result.output


class TestInstallService:
    """Tests for 'autoprint install-service'."""

    def test_unit_runs_agent(self):
        """Should start the agent through the module entry point."""
        unit = render_service_unit(user=True)

        assert "-m autoprint start" in unit
        assert "WantedBy=default.target" in unit
        assert "WantedBy=multi-user.target" in render_service_unit(user=False)

    def test_user_install_writes_unit(self, runner, configured, tmp_path):
        """Should write the unit into the user systemd folder."""
        with patch("autoprint.cli.Path.home", return_value=tmp_path):
            result = runner.invoke(main, ["install-service", "--user"])

        assert result.exit_code == 0
        unit_file = tmp_path / ".config" / "systemd" / "user" / "autoprint.service"
        assert "-m autoprint start" in unit_file.read_text()

    def test_system_install_only_prints(self, runner, configured):
        """Should print the unit and instructions without writing it."""
        result = runner.invoke(main, ["install-service"])

        assert result.exit_code == 0
        assert "/etc/systemd/system/autoprint.service" in result.output
        assert "[Service]" in result.output
