import pytest
from click.testing import CliRunner
from pathlib import Path

from flowstate.models.capture import Asset, AssetType
from flowstate.models.session import PowerShellVersion, ShellType, TerminalSession


@pytest.fixture
def cli_runner():
    """Provides a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    """Creates an empty FlowState data directory."""
    path = tmp_path / ".flowstate"
    path.mkdir()
    return path


@pytest.fixture
def temp_project_dir(tmp_path):
    """Creates a temporary project directory with basic structure."""
    project_path = tmp_path / "project"
    (project_path / "src").mkdir(parents=True)
    (project_path / "src" / "main.py").write_text("print('Hello, World!')")
    (project_path / "package.json").write_text('{"name": "demo"}')
    return project_path


@pytest.fixture
def pwsh_session():
    """Provides a PowerShell Core session hosted in Windows Terminal."""
    return TerminalSession(
        process_id=4200,
        process_name="pwsh.exe",
        shell_type=ShellType.POWERSHELL_CORE,
        power_shell_version=PowerShellVersion.CORE,
        is_hosted_in_windows_terminal=True,
        current_directory="C:\\repo",
        window_title="pwsh",
        parent_process_id=4000,
        parent_name="WindowsTerminal.exe",
    )


@pytest.fixture
def make_asset():
    """Factory for assets of any type."""
    def _make(asset_id="a1", asset_type=AssetType.TERMINAL, title="asset", path=None, metadata=None,
              capture_id="cap1"):
        return Asset(
            id=asset_id,
            capture_id=capture_id,
            asset_type=asset_type,
            title=title,
            path=path,
            metadata=metadata or {},
        )
    return _make


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    """Keep the data directory out of the real home for all tests."""
    monkeypatch.setenv("FLOWSTATE_HOME", str(tmp_path / "flowstate-home"))
    return Path(tmp_path / "flowstate-home")
