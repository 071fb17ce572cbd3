"""Tests for the config commands."""

from flowstate.cli.main import cli
from flowstate.utils.config_manager import ConfigManager


class TestConfigCommands:
    """Test cases for flowstate config."""

    def test_show_defaults(self, cli_runner, data_dir):
        """Test the default settings are shown."""
        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "config", "show"])

        assert result.exit_code == 0
        assert "FlowState Settings:" in result.output
        assert "browser_batch_size: 18" in result.output
        assert "smart_capture: false" in result.output

    def test_set_value(self, cli_runner, data_dir):
        """Test a setting is saved."""
        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "config", "set", "smart_capture", "true"])

        assert result.exit_code == 0
        assert "Set smart_capture = True" in result.output
        assert ConfigManager(data_dir).load_settings().smart_capture is True

    def test_set_unknown_key(self, cli_runner, data_dir):
        """Test unknown settings are rejected."""
        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "config", "set", "colour", "blue"])

        assert result.exit_code == 1
        assert "Error: Unknown setting 'colour'" in result.output

    def test_set_invalid_value(self, cli_runner, data_dir):
        """Test values of the wrong type are rejected."""
        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "config", "set", "browser_batch_size", "lots"])

        assert result.exit_code == 1
        assert "Invalid value for browser_batch_size" in result.output
