"""Tests for process tree inspection."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import psutil

from flowstate.models.session import ShellType
from flowstate.services.process_service import (
    ProcessFact,
    ProcessInspector,
    extract_directory_from_child,
    extract_directory_from_own_command,
    get_last_executed_command,
)


def _arena(*facts):
    return {fact.pid: fact for fact in facts}


class TestDirectoryExtraction:
    """Test cases for working-directory hints in command lines."""

    def test_claude_from_directory(self):
        """Test a node-hosted claude with an explicit directory."""
        cmd = 'node "C:\\Users\\me\\AppData\\npm\\claude.js" from C:\\work\\api'
        assert extract_directory_from_child(cmd) == "C:\\work\\api"

    def test_node_script_directory(self):
        """Test a node script path yields its directory."""
        assert extract_directory_from_child("node /home/me/app/server.js") == "/home/me/app"

    def test_node_modules_script_is_ignored(self):
        """Test scripts inside node_modules are not a project directory."""
        assert extract_directory_from_child("node /home/me/app/node_modules/vite/bin/vite.js") is None

    def test_python_script_directory(self):
        """Test a python script path yields its directory."""
        assert extract_directory_from_child("python3 /srv/tool/main.py --fast") == "/srv/tool"

    def test_cwd_flag(self):
        """Test --cwd flags are honored."""
        assert extract_directory_from_child('tool --cwd "/work/repo"') == "/work/repo"

    def test_no_hint(self):
        """Test commands without a hint."""
        assert extract_directory_from_child("vim") is None
        assert extract_directory_from_child("") is None

    def test_own_command_working_directory(self):
        """Test a shell started with -WorkingDirectory."""
        cmd = 'pwsh.exe -WorkingDirectory "C:\\work\\web"'
        assert extract_directory_from_own_command(cmd) == "C:\\work\\web"

    def test_own_command_cd(self):
        """Test a shell started with a cd."""
        assert extract_directory_from_own_command('cmd.exe /k cd /d "D:\\proj"') == "D:\\proj"

    def test_own_command_relative_ignored(self):
        """Test relative directories are not trusted."""
        assert extract_directory_from_own_command("bash -c cd src") is None

    def test_last_executed_command(self):
        """Test comments and blanks are skipped."""
        assert get_last_executed_command(["npm test", "# note", "  "]) == "npm test"
        assert get_last_executed_command([]) is None


class TestProcessInspector:
    """Test cases for ProcessInspector."""

    def test_get_children_is_bounded(self):
        """Test the walk stops at the depth limit."""
        inspector = ProcessInspector(facts=_arena(
            ProcessFact(pid=1, ppid=0, name="bash"),
            ProcessFact(pid=2, ppid=1, name="npm"),
            ProcessFact(pid=3, ppid=2, name="node"),
            ProcessFact(pid=4, ppid=3, name="esbuild"),
            ProcessFact(pid=5, ppid=4, name="deep"),
        ))

        names = [command.process_name for command in inspector.get_children(1)]

        assert names == ["npm", "node", "esbuild"]

    def test_get_children_survives_cycles(self):
        """Test a cycle in reported parents does not loop."""
        inspector = ProcessInspector(facts=_arena(
            ProcessFact(pid=1, ppid=2, name="a"),
            ProcessFact(pid=2, ppid=1, name="b"),
        ))

        assert [command.process_id for command in inspector.get_children(1)] == [2]

    def test_self_parented_process_is_not_a_child(self):
        """Test a process listing itself as parent is skipped."""
        inspector = ProcessInspector(facts=_arena(ProcessFact(pid=7, ppid=7, name="init")))

        assert inspector.get_children(7) == []
        assert inspector.get_parent(7) is None

    def test_parent_and_direct_children(self):
        """Test parent lookup and direct children."""
        inspector = ProcessInspector(facts=_arena(
            ProcessFact(pid=1, ppid=0, name="WindowsTerminal.exe"),
            ProcessFact(pid=2, ppid=1, name="pwsh.exe"),
        ))

        assert inspector.get_parent(2).name == "WindowsTerminal.exe"
        assert [fact.pid for fact in inspector.get_direct_children(1)] == [2]

    def test_resolve_working_directory_prefers_children(self):
        """Test child hints win over the shell's own cwd."""
        inspector = ProcessInspector(facts=_arena(
            ProcessFact(pid=1, ppid=0, name="bash", cmdline="bash"),
            ProcessFact(pid=2, ppid=1, name="node", cmdline="node /work/api/index.js"),
        ))

        assert inspector.resolve_working_directory(1) == "/work/api"

    def test_resolve_working_directory_falls_back_to_home(self, tmp_path):
        """Test home is used when nothing else is known."""
        inspector = ProcessInspector(facts=_arena(ProcessFact(pid=1, ppid=0, name="bash")), home=tmp_path)

        with patch.object(inspector, 'get_process_cwd', return_value=None):
            assert inspector.resolve_working_directory(1) == str(tmp_path)

    @patch('flowstate.services.process_service.psutil.Process')
    def test_get_process_cwd_access_denied(self, mock_process):
        """Test a denied cwd read degrades to None."""
        mock_process.return_value.cwd.side_effect = psutil.AccessDenied(1)

        assert ProcessInspector(facts={}).get_process_cwd(1) is None

    @patch('flowstate.services.process_service.psutil.Process')
    def test_get_environment_is_allow_listed(self, mock_process):
        """Test only known variables are kept."""
        mock_process.return_value.environ.return_value = {"PATH": "/bin", "SECRET_TOKEN": "x"}

        assert ProcessInspector(facts={}).get_environment(1) == {"PATH": "/bin"}

    def test_command_history_strips_zsh_timestamps(self, tmp_path):
        """Test extended zsh history lines are cleaned."""
        (tmp_path / ".zsh_history").write_text(": 1700000000:0;git status\n: 1700000001:0;npm test\n")
        inspector = ProcessInspector(facts={}, home=tmp_path)

        assert inspector.get_command_history(ShellType.ZSH) == ["git status", "npm test"]

    def test_command_history_limit(self, tmp_path):
        """Test only the last entries are returned."""
        (tmp_path / ".bash_history").write_text("\n".join(f"cmd{i}" for i in range(80)))
        inspector = ProcessInspector(facts={}, home=tmp_path)

        history = inspector.get_command_history(ShellType.BASH, limit=50)

        assert len(history) == 50
        assert history[-1] == "cmd79"

    def test_command_history_missing_file(self, tmp_path):
        """Test a missing history file yields nothing."""
        assert ProcessInspector(facts={}, home=tmp_path).get_command_history(ShellType.BASH) == []

    @patch('flowstate.services.process_service.psutil.process_iter')
    def test_find_processes(self, mock_iter):
        """Test keyword search over names and command lines."""
        claude = MagicMock()
        claude.info = {"pid": 50, "ppid": 1, "name": "node", "exe": "", "cmdline": ["node", "claude"],
                       "create_time": 0}
        other = MagicMock()
        other.info = {"pid": 51, "ppid": 1, "name": "vim", "exe": "", "cmdline": ["vim"], "create_time": 0}
        mock_iter.return_value = [claude, other]

        found = ProcessInspector().find_processes("Claude")

        assert [fact.pid for fact in found] == [50]

    @patch('flowstate.services.process_service.sys')
    def test_window_info_off_windows(self, mock_sys):
        """Test window lookup is skipped outside Windows."""
        mock_sys.platform = "linux"

        assert ProcessInspector(facts={}, home=Path("/tmp")).get_window_info(1) == (None, 0)
