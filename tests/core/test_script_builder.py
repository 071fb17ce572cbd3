"""Tests for startup script generation."""

from flowstate.core.context_document import ContextView
from flowstate.core.script_builder import (
    CommandBuilder,
    ShellDialect,
    build_startup_script,
    dialect_for,
    extract_launch_command,
    is_blocking_command,
    pick_relevant_command,
)
from flowstate.models.claude import ClaudeCodeContext
from flowstate.models.session import RunningCommand, ShellType, TerminalSession


def _claude_session(shell_type=ShellType.POWERSHELL_CORE, history=None):
    return TerminalSession(
        process_id=10,
        shell_type=shell_type,
        current_directory="C:\\repo",
        claude_context=ClaudeCodeContext(
            is_running=True,
            working_directory="C:\\repo",
            startup_command="claude --resume",
            command_history_before_start=history or [],
        ),
    )


def _view():
    return ContextView(working_directory="C:\\repo", reported_directory="C:\\repo", modified_files=["src/app.ts"])


class TestCommandBuilder:
    """Test cases for dialect-specific quoting."""

    def test_quote(self):
        """Test each dialect escapes its own quote character."""
        assert CommandBuilder(ShellDialect.POWERSHELL).quote("it's") == "'it''s'"
        assert CommandBuilder(ShellDialect.CMD).quote('a"b%c') == '"a""b%%c"'
        assert CommandBuilder(ShellDialect.POSIX).quote("it's") == "'it'\\''s'"

    def test_command_quotes_only_unsafe_args(self):
        """Test safe arguments are left bare."""
        assert CommandBuilder(ShellDialect.POSIX).command("ls", "my dir") == "ls 'my dir'"
        assert CommandBuilder(ShellDialect.POSIX).command() == ""

    def test_powershell_call_operator(self):
        """Test a quoted executable gets the call operator."""
        line = CommandBuilder(ShellDialect.POWERSHELL).command("C:\\Program Files\\x.exe", "-a")

        assert line == "& 'C:\\Program Files\\x.exe' -a"

    def test_change_directory(self):
        """Test directory changes per dialect."""
        assert CommandBuilder(ShellDialect.POWERSHELL).change_directory("C:\\repo") == \
            "Set-Location -LiteralPath 'C:\\repo'"
        assert CommandBuilder(ShellDialect.CMD).change_directory("C:\\repo") == 'cd /d "C:\\repo"'
        assert CommandBuilder(ShellDialect.POSIX).change_directory("/work") == "cd '/work'"

    def test_cmd_echo_escapes(self):
        """Test cmd metacharacters are escaped."""
        builder = CommandBuilder(ShellDialect.CMD)

        assert builder.echo("a & b") == "echo a ^& b"
        assert builder.echo() == "echo."

    def test_cmd_literal_doubles_percent(self):
        """Test captured command text cannot expand batch variables."""
        builder = CommandBuilder(ShellDialect.CMD)

        assert builder.invoke_literal("echo %PATH%") == "echo %%PATH%%"
        assert builder.start_detached("serve %1") == 'start "" cmd /k serve %%1'
        assert CommandBuilder(ShellDialect.POSIX).invoke_literal("date +%s") == "date +%s"

    def test_sleep(self):
        """Test sleep lines."""
        assert CommandBuilder(ShellDialect.POWERSHELL).sleep_ms(500) == "Start-Sleep -Milliseconds 500"
        assert CommandBuilder(ShellDialect.CMD).sleep_ms(500) == "timeout /t 1 /nobreak >nul"
        assert CommandBuilder(ShellDialect.POSIX).sleep_ms(500) == "sleep 0.5"

    def test_auto_enter_powershell_only(self):
        """Test the auto-enter job exists only for PowerShell."""
        assert CommandBuilder(ShellDialect.POSIX).auto_enter() == []
        assert "$shell.SendKeys('{ENTER}')" in "\n".join(CommandBuilder(ShellDialect.POWERSHELL).auto_enter())


class TestHelpers:
    """Test cases for command classification."""

    def test_dialect_for(self):
        """Test dialect selection by shell type."""
        assert dialect_for(ShellType.POWERSHELL) == ShellDialect.POWERSHELL
        assert dialect_for(ShellType.CMD) == ShellDialect.CMD
        assert dialect_for(ShellType.GIT_BASH) == ShellDialect.POSIX
        assert ShellDialect.CMD.extension == ".bat"

    def test_blocking_commands(self):
        """Test dev servers are detected as blocking."""
        assert is_blocking_command("npm run dev")
        assert is_blocking_command("yarn dev")
        assert not is_blocking_command("git status")

    def test_extract_launch_command(self):
        """Test the command a shell was started with."""
        assert extract_launch_command("pwsh.exe -NoExit -Command npm run dev") == "npm run dev"
        assert extract_launch_command('cmd.exe /k "npm start"') == "npm start"
        assert extract_launch_command("bash") is None
        assert extract_launch_command(None) is None

    def test_pick_relevant_command(self):
        """Test the most specific recipe wins and claude is ignored."""
        commands = [
            RunningCommand(process_id=1, process_name="node", command_line="node claude-cli.js"),
            RunningCommand(process_id=2, process_name="python", command_line="python app.py"),
            RunningCommand(process_id=3, process_name="npm", command_line="npm run dev"),
        ]

        assert pick_relevant_command(commands).process_id == 3
        assert pick_relevant_command(commands[:1]) is None


class TestBuildStartupScript:
    """Test cases for whole-script generation."""

    def test_nothing_to_replay(self):
        """Test idle sessions produce no script."""
        session = TerminalSession(process_id=1, shell_type=ShellType.BASH, current_directory="/work")

        assert build_startup_script(session) is None

    def test_last_executed_command(self):
        """Test the last command is recorded as a comment."""
        session = TerminalSession(process_id=1, shell_type=ShellType.BASH, current_directory="/work",
                                  last_executed_command="make test")

        script = build_startup_script(session)

        assert script.text == "cd '/work'\n# Last executed command:\n# make test\n"
        assert script.context_path is None

    def test_launch_command(self):
        """Test a shell started with -Command reruns that command."""
        session = TerminalSession(process_id=1, shell_type=ShellType.POWERSHELL_CORE,
                                  own_command_line="pwsh.exe -Command npm run build")

        script = build_startup_script(session)

        assert script.dialect == ShellDialect.POWERSHELL
        assert script.text.splitlines()[-1] == "npm run build"

    def test_python_replay(self):
        """Test python scripts rerun in the foreground."""
        session = TerminalSession(
            process_id=1, shell_type=ShellType.BASH,
            running_commands=[RunningCommand(process_id=2, process_name="python",
                                             command_line="python app.py --port 8000")],
        )

        script = build_startup_script(session)

        assert script.text.splitlines() == ["# Restarting Python script...", "python app.py --port 8000"]

    def test_cmd_replay_escapes_percent(self):
        """Test a replayed cmd command keeps its literal percent signs."""
        session = TerminalSession(
            process_id=1, shell_type=ShellType.CMD,
            running_commands=[RunningCommand(process_id=2, process_name="ffmpeg.exe",
                                             command_line="ffmpeg -i frame%03d.png out.mp4")],
        )

        script = build_startup_script(session)

        assert script.text.splitlines() == ["REM Restarting ffmpeg.exe...", "ffmpeg -i frame%%03d.png out.mp4"]

    def test_cmd_history_replay_escapes_percent(self, tmp_path):
        """Test history replayed before Claude is escaped for batch files."""
        session = _claude_session(shell_type=ShellType.CMD, history=["set NAME=%USERNAME%"])

        script = build_startup_script(session, context_view=_view(), temp_dir=tmp_path)

        lines = script.text.splitlines()
        assert "set NAME=%%USERNAME%%" in lines
        assert "set NAME=%USERNAME%" not in lines

    def test_dev_server_replay(self):
        """Test npm dev servers free their ports and restart in the background."""
        session = TerminalSession(
            process_id=1, shell_type=ShellType.BASH,
            running_commands=[RunningCommand(process_id=2, process_name="npm", command_line="npm run dev")],
        )

        lines = build_startup_script(session).text.splitlines()

        assert "lsof -ti:5173 | xargs kill -9 2>/dev/null" in lines
        assert lines[-1] == "( npm run dev ) &"

    def test_claude_session(self, tmp_path):
        """Test a Claude session writes its context and ends with the startup command."""
        session = _claude_session(history=["cd C:\\repo", "npm run dev", "git status"])

        script = build_startup_script(session, context_view=_view(), temp_dir=tmp_path, clock=lambda: 1700000000.0)

        assert script.context_path == tmp_path / "flowstate_claude_context_1700000000000.md"
        assert script.context_path.read_text(encoding="utf-8").startswith("# FlowState Session Restoration")
        lines = script.text.splitlines()
        assert lines[0] == "Set-Location -LiteralPath 'C:\\repo'"
        assert "cd C:\\repo" not in lines
        assert "Start-Process powershell -ArgumentList '-NoExit','-Command','npm run dev'" in lines
        assert "git status" in lines
        assert f"Read {script.context_path} and continue where we left off." in script.text
        assert "  $shell.SendKeys('{ENTER}')" in lines
        assert lines[-1] == "claude --resume"

    def test_claude_context_write_failure(self, tmp_path):
        """Test an unwritable temp directory falls back to a plain restart."""
        session = _claude_session(shell_type=ShellType.BASH)

        script = build_startup_script(session, context_view=_view(), temp_dir=tmp_path / "missing")

        assert script.context_path is None
        assert script.text.splitlines()[1:] == ["# Restarting Claude Code session...", "claude --resume"]
