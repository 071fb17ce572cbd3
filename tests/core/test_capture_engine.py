"""Tests for the terminal capture pipeline."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from flowstate.core.capture_engine import CaptureEngine, asset_record, asset_title
from flowstate.models.claude import ClaudeCodeContext
from flowstate.models.session import ShellType, TerminalSession
from flowstate.services.process_service import ProcessFact, ProcessInspector


class FakeInspector(ProcessInspector):
    """Inspector over a fixed process arena."""

    def __init__(self, arena, home, cwds=None):
        super().__init__(home=home)
        self.arena = arena
        self.cwds = cwds or {}

    def _read_processes(self):
        return dict(self.arena)

    def get_window_info(self, pid):
        return None, 0

    def get_process_cwd(self, pid):
        return self.cwds.get(pid)

    def get_environment(self, pid):
        return {"NODE_ENV": "development"}


@pytest.fixture
def arena():
    facts = [
        ProcessFact(pid=1, ppid=0, name="systemd"),
        ProcessFact(pid=50, ppid=1, name="gnome-terminal-server"),
        ProcessFact(pid=100, ppid=50, name="bash", cmdline="bash"),
        ProcessFact(pid=101, ppid=100, name="vim", cmdline="vim notes.txt"),
        ProcessFact(pid=200, ppid=1, name="zsh", cmdline="zsh"),
        ProcessFact(pid=300, ppid=1, name="python3", cmdline="python3 worker.py"),
        ProcessFact(pid=400, ppid=50, name="bash", cmdline="bash"),
        ProcessFact(pid=401, ppid=400, name="node", cmdline="node /usr/lib/node_modules/claude/cli.js"),
    ]
    return {fact.pid: fact for fact in facts}


@pytest.fixture
def engine(arena, tmp_path):
    (tmp_path / ".bash_history").write_text("ls\nnpm test\n")
    inspector = FakeInspector(arena, tmp_path, cwds={100: "/work/api", 400: "/work/web"})
    claude = ClaudeCodeContext(is_running=True, working_directory="/work/web")
    resolver = Mock()
    resolver.resolve = AsyncMock(side_effect=lambda session: claude if session.process_id == 400 else None)
    return CaptureEngine(inspector=inspector, resolver=resolver, platform="linux", home=tmp_path)


class TestAssetRecords:
    """Test cases for turning sessions into asset records."""

    def test_titles(self):
        """Test titles fall back to shell and directory, then PID."""
        assert asset_title(TerminalSession(process_id=1, window_title="build")) == "build"
        assert asset_title(TerminalSession(process_id=1, shell_type=ShellType.CMD,
                                           current_directory="C:\\work\\api")) == "CMD - api"
        assert asset_title(TerminalSession(process_id=5, shell_type=ShellType.ZSH)) == "Zsh (PID 5)"

    def test_record(self, pwsh_session):
        """Test records carry camelCase session metadata."""
        record = asset_record(pwsh_session)

        assert record["asset_type"] == "terminal"
        assert record["title"] == "pwsh"
        assert record["path"] == "C:\\repo"
        assert record["metadata"]["shellType"] == "PowerShellCore"
        assert record["metadata"]["isWindowsTerminal"] is True
        assert record["metadata"]["powerShellVersion"] == "Core"


class TestCaptureEngine:
    """Test cases for the capture pipeline."""

    def test_find_shells(self, engine):
        """Test only shells are picked from the arena."""
        assert [fact.pid for fact in engine.find_shells()] == [100, 200, 400]

    def test_probe_session(self, engine):
        """Test a probed session carries children, history and directory."""
        session = engine.probe_session(engine.inspector.get_process(100))

        assert session.shell_type == ShellType.BASH
        assert session.parent_name == "gnome-terminal-server"
        assert session.running_processes == ["vim"]
        assert session.command_history == ["ls", "npm test"]
        assert session.last_executed_command == "npm test"
        assert session.current_directory == "/work/api"
        assert session.environment_variables == {"NODE_ENV": "development"}
        assert session.is_hosted_in_windows_terminal is None

    def test_collect_sessions(self, engine):
        """Test every shell is probed without filtering."""
        assert [s.process_id for s in engine.collect_sessions()] == [100, 200, 400]

    def test_capture_filters_and_enriches(self, engine, tmp_path):
        """Test windowless shells are dropped and only Claude sessions enriched."""
        logs = tmp_path / ".claude" / "logs"
        logs.mkdir(parents=True)
        (logs / "session.log").write_text("> hi")

        sessions = asyncio.run(engine.capture_sessions())

        assert [s.process_id for s in sessions] == [100, 400]
        assert sessions[0].claude_context is None
        assert sessions[0].terminal_output is None
        assert sessions[1].has_claude
        assert sessions[1].terminal_output == "> hi"

    def test_capture_records(self, engine):
        """Test records are produced for kept sessions."""
        records = asyncio.run(engine.capture_records())

        assert [r["title"] for r in records] == ["Bash - api", "Bash - web"]
        assert records[1]["metadata"]["claudeCodeContext"]["isClaudeCodeRunning"] is True
