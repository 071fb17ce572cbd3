"""Tests for the captures, assets and context commands."""

from flowstate.cli.main import cli
from flowstate.utils.asset_store import JsonAssetStore


def _store_capture(data_dir, tmp_path):
    claude = {
        "isClaudeCodeRunning": True,
        "workingDirectory": str(tmp_path),
        "startupCommand": "claude",
    }
    return JsonAssetStore(data_dir).create_capture("morning", [
        {"asset_type": "terminal", "title": "api shell", "path": str(tmp_path),
         "metadata": {"processId": 1, "shellType": "Bash", "claudeCodeContext": claude}},
        {"asset_type": "terminal", "title": "plain shell", "metadata": {"processId": 2, "shellType": "Bash"}},
        {"asset_type": "browser", "title": "Docs", "metadata": {"url": "https://docs.example.com"}},
    ])


class TestCapturesCommand:
    """Test cases for flowstate captures."""

    def test_empty(self, cli_runner, data_dir):
        """Test the hint shown without captures."""
        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "captures"])

        assert result.exit_code == 0
        assert "Use 'flowstate capture NAME' to create one." in result.output

    def test_lists_captures(self, cli_runner, data_dir, tmp_path):
        """Test saved captures are listed with asset counts."""
        capture = _store_capture(data_dir, tmp_path)

        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "captures"])

        assert result.exit_code == 0
        assert capture.id in result.output
        assert "morning" in result.output
        assert "3" in result.output


class TestAssetsCommand:
    """Test cases for flowstate assets."""

    def test_lists_assets(self, cli_runner, data_dir, tmp_path):
        """Test assets are shown with their status."""
        capture = _store_capture(data_dir, tmp_path)

        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "assets", capture.id])

        assert result.exit_code == 0
        assert "api shell" in result.output
        assert "CLAUDE" in result.output
        assert "Docs" in result.output

    def test_unknown_capture(self, cli_runner, data_dir):
        """Test unknown capture ids are an error."""
        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "assets", "nope"])

        assert result.exit_code == 1
        assert "Error: Capture nope not found" in result.output


class TestContextCommand:
    """Test cases for flowstate context."""

    def test_prints_document(self, cli_runner, data_dir, tmp_path):
        """Test the context document of a Claude terminal."""
        capture = _store_capture(data_dir, tmp_path)
        asset = JsonAssetStore(data_dir).get_assets(capture.id)[0]

        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "context", asset.id])

        assert result.exit_code == 0
        assert result.output.startswith("# FlowState Session Restoration")

    def test_terminal_without_claude(self, cli_runner, data_dir, tmp_path):
        """Test terminals without Claude Code are refused."""
        capture = _store_capture(data_dir, tmp_path)
        asset = JsonAssetStore(data_dir).get_assets(capture.id)[1]

        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "context", asset.id])

        assert result.exit_code == 1
        assert "was not running Claude Code" in result.output

    def test_not_a_terminal(self, cli_runner, data_dir, tmp_path):
        """Test non-terminal assets are refused."""
        capture = _store_capture(data_dir, tmp_path)
        asset = JsonAssetStore(data_dir).get_assets(capture.id)[2]

        result = cli_runner.invoke(cli, ["--data-dir", str(data_dir), "context", asset.id])

        assert result.exit_code == 1
        assert "not a terminal" in result.output
