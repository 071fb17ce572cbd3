"""Startup scripts that replay a captured terminal session."""

import logging
import re
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..models.session import RunningCommand, ShellType, TerminalSession
from .constants import (
    AUTO_ENTER_DELAY_MS,
    BLOCKING_COMMAND_PATTERNS,
    CLAUDE_KEYWORD,
    CONTEXT_FILE_PREFIX,
    DEFAULT_CLAUDE_COMMAND,
    DEV_SERVER_PORTS,
    START_SERVER_PORTS,
)
from .context_document import (
    ContextView,
    build_context_view,
    describe_work,
    project_name,
    render_context_document,
    suggest_next_steps,
)

logger = logging.getLogger(__name__)

_SAFE_ARG = re.compile(r"^[A-Za-z0-9_@+=:,./\\-]+$")
_LAUNCH_COMMAND = re.compile(r"(?:-(?:Command|c)|/k)\s+(.+)$", re.IGNORECASE)
_CD_ONLY = re.compile(r"^(?:cd|set-location|sl|chdir)(?:\s|$)", re.IGNORECASE)
_PYTHON_SCRIPT = re.compile(r"(?:python|py\.exe)\s+(.+)")
_NODE_SCRIPT = re.compile(r"node\s+(.+)")
_RULE = "=" * 60
_THIN_RULE = "-" * 60


class ShellDialect(Enum):
    """Script syntax families."""
    POWERSHELL = "powershell"
    CMD = "cmd"
    POSIX = "posix"

    @property
    def extension(self) -> str:
        return {ShellDialect.POWERSHELL: ".ps1", ShellDialect.CMD: ".bat", ShellDialect.POSIX: ".sh"}[self]


def dialect_for(shell_type: Optional[ShellType]) -> ShellDialect:
    if shell_type and shell_type.is_powershell:
        return ShellDialect.POWERSHELL
    if shell_type == ShellType.CMD:
        return ShellDialect.CMD
    return ShellDialect.POSIX


class CommandBuilder:
    """Builds script lines for one dialect. All quoting happens here."""

    def __init__(self, dialect: ShellDialect):
        self.dialect = dialect

    def quote(self, arg: str) -> str:
        arg = str(arg)
        if self.dialect == ShellDialect.POWERSHELL:
            return "'" + arg.replace("'", "''") + "'"
        if self.dialect == ShellDialect.CMD:
            return '"' + arg.replace('"', '""').replace("%", "%%") + '"'
        return "'" + arg.replace("'", "'\\''") + "'"

    def _arg(self, arg: str) -> str:
        return arg if _SAFE_ARG.match(arg) else self.quote(arg)

    def command(self, *argv: str) -> str:
        """Join an argument vector, quoting only the arguments that need it."""
        if not argv:
            return ""
        parts = [self._arg(arg) for arg in argv]
        if self.dialect == ShellDialect.POWERSHELL and parts[0] != argv[0]:
            parts.insert(0, "&")
        return " ".join(parts)

    def change_directory(self, path: str) -> str:
        if self.dialect == ShellDialect.POWERSHELL:
            return f"Set-Location -LiteralPath {self.quote(path)}"
        if self.dialect == ShellDialect.CMD:
            return f"cd /d {self.quote(path)}"
        return f"cd {self.quote(path)}"

    def echo(self, text: str = "") -> str:
        if self.dialect == ShellDialect.POWERSHELL:
            return f"Write-Host {self.quote(text)}" if text else 'Write-Host ""'
        if self.dialect == ShellDialect.CMD:
            if not text:
                return "echo."
            return "echo " + re.sub(r"([&|<>^])", r"^\1", text).replace("%", "%%")
        return f"echo {self.quote(text)}" if text else 'echo ""'

    def comment(self, text: str) -> str:
        if self.dialect == ShellDialect.CMD:
            return f"REM {text}"
        return f"# {text}"

    def pause(self, prompt: str) -> str:
        if self.dialect == ShellDialect.POWERSHELL:
            return f"$null = Read-Host {self.quote(prompt)}"
        if self.dialect == ShellDialect.CMD:
            return f'set /p "FLOWSTATE_READY={prompt.replace(chr(34), "")}: "'
        return f"read -r -p {self.quote(prompt + ': ')} _"

    def sleep_ms(self, milliseconds: int) -> str:
        if self.dialect == ShellDialect.POWERSHELL:
            return f"Start-Sleep -Milliseconds {int(milliseconds)}"
        if self.dialect == ShellDialect.CMD:
            return f"timeout /t {max(1, round(milliseconds / 1000))} /nobreak >nul"
        return f"sleep {milliseconds / 1000:g}"

    def literal(self, command: str) -> str:
        """Captured command text as a script line, with ``%`` doubled for batch files."""
        if self.dialect == ShellDialect.CMD:
            return command.replace("%", "%%")
        return command

    def invoke_literal(self, command: str) -> str:
        """Re-run a captured command line as text."""
        if self.dialect == ShellDialect.POWERSHELL:
            return f"Invoke-Expression {self.quote(command)}"
        return self.literal(command)

    def start_detached(self, command: str) -> str:
        """Run a command in its own window or in the background."""
        if self.dialect == ShellDialect.POWERSHELL:
            return f"Start-Process powershell -ArgumentList '-NoExit','-Command',{self.quote(command)}"
        if self.dialect == ShellDialect.CMD:
            return f'start "" cmd /k {self.literal(command)}'
        return f"( {command} ) &"

    def kill_port(self, port: int) -> str:
        """Terminate whatever process is listening on ``port``."""
        port = int(port)
        if self.dialect == ShellDialect.POWERSHELL:
            return (
                f"Get-NetTCPConnection -LocalPort {port} -ErrorAction SilentlyContinue | "
                "ForEach-Object { Stop-Process -Id $_.OwningProcess -Force -ErrorAction SilentlyContinue }"
            )
        if self.dialect == ShellDialect.CMD:
            return (
                f"for /f \"tokens=5\" %%p in ('netstat -ano ^| findstr :{port} ^| findstr LISTENING') "
                "do taskkill /F /PID %%p >nul 2>&1"
            )
        return f"lsof -ti:{port} | xargs kill -9 2>/dev/null"

    def auto_enter(self, delay_ms: int = AUTO_ENTER_DELAY_MS) -> List[str]:
        """Background keystroke that confirms Claude Code's startup prompt (PowerShell only)."""
        if self.dialect != ShellDialect.POWERSHELL:
            return []
        return [
            "$job = Start-Job -ScriptBlock {",
            f"  Start-Sleep -Milliseconds {int(delay_ms)}",
            "  $shell = New-Object -ComObject WScript.Shell",
            "  $shell.SendKeys('{ENTER}')",
            "}",
        ]


@dataclass
class StartupScript:
    """Generated script body plus the context document it points at."""
    text: str
    dialect: ShellDialect
    context_path: Optional[Path] = None


def is_blocking_command(command: str) -> bool:
    lowered = command.strip().lower()
    return any(re.search(pattern, lowered) for pattern in BLOCKING_COMMAND_PATTERNS)


def extract_launch_command(own_command_line: Optional[str]) -> Optional[str]:
    """The command a shell was started to run (-Command, -c or /k), if any."""
    match = _LAUNCH_COMMAND.search(own_command_line or "")
    if not match:
        return None
    command = re.sub(r"^[\"']|[\"']$", "", match.group(1).strip())
    return command or None


def _recipe_rank(command_line: str) -> int:
    line = command_line
    checks = [
        "npm" in line and "dev" in line,
        "npm" in line and "start" in line,
        "electron" in line,
        "python" in line or "py.exe" in line,
        "node " in line,
        "yarn" in line and "dev" in line,
        "pnpm" in line and "dev" in line,
        "docker-compose" in line or "docker compose" in line,
    ]
    for rank, matched in enumerate(checks):
        if matched:
            return rank
    return len(checks)


def pick_relevant_command(commands: List[RunningCommand]) -> Optional[RunningCommand]:
    """Choose the running command with the most specific replay recipe."""
    candidates = [c for c in commands if c.command_line and CLAUDE_KEYWORD not in c.command_line.lower()]
    if not candidates:
        return None
    return min(candidates, key=lambda c: _recipe_rank(c.command_line))


def replay_running_command(builder: CommandBuilder, command: RunningCommand) -> List[str]:
    line = command.command_line
    rank = _recipe_rank(line)
    if rank == 0:
        lines = [builder.comment("Restarting development server in background...")]
        lines.extend(builder.kill_port(port) for port in DEV_SERVER_PORTS)
        return lines + [builder.sleep_ms(500), builder.start_detached("npm run dev")]
    if rank == 1:
        lines = [builder.comment("Restarting application in background...")]
        lines.extend(builder.kill_port(port) for port in START_SERVER_PORTS)
        return lines + [builder.sleep_ms(500), builder.start_detached("npm start")]
    if rank == 2:
        return [builder.comment("Restarting Electron app in background..."), builder.start_detached(line)]
    if rank == 3:
        match = _PYTHON_SCRIPT.search(line)
        lines = [builder.comment("Restarting Python script...")]
        return lines + ([builder.literal(f"python {match.group(1)}")] if match else [])
    if rank == 4:
        match = _NODE_SCRIPT.search(line)
        lines = [builder.comment("Restarting Node.js script...")]
        return lines + ([builder.literal(f"node {match.group(1)}")] if match else [])
    if rank == 5:
        return [builder.comment("Restarting development server..."), "yarn dev"]
    if rank == 6:
        return [builder.comment("Restarting development server..."), "pnpm dev"]
    if rank == 7:
        return [builder.comment("Restarting Docker containers..."), "docker-compose up"]
    return [builder.comment(f"Restarting {command.process_name or 'process'}..."), builder.invoke_literal(line)]


def _claude_lines(
    builder: CommandBuilder,
    session: TerminalSession,
    view: ContextView,
    context_path: Optional[Path],
) -> List[str]:
    claude = session.claude_context
    startup = (claude.startup_command or "").strip() or DEFAULT_CLAUDE_COMMAND
    if context_path is None:
        return [builder.comment("Restarting Claude Code session...")] + builder.auto_enter() + [builder.literal(startup)]

    lines = [builder.comment(_RULE), builder.comment("FlowState: Restoring Claude Code Session"), builder.comment(_RULE)]

    replay = [c.strip() for c in claude.command_history_before_start if c.strip() and not _CD_ONLY.match(c.strip())]
    if replay:
        lines.append(builder.comment("Replaying commands executed before Claude Code launch"))
        for command in replay:
            if is_blocking_command(command):
                lines.append(builder.start_detached(command))
                lines.append(builder.echo(f"Started background process: {command}"))
            else:
                lines.append(builder.literal(command))

    description = describe_work(view)
    prompt = (
        f"Read {context_path} and continue where we left off. {description}. "
        "Review the full context and ask me which option I would like to pursue."
    )
    recap = ["", _RULE, "FLOWSTATE SESSION RECOVERY", _RULE, "",
             f"Project: {project_name(view.working_directory)}",
             f"Work Location: {description}", "", "Suggested Next Steps:"]
    recap.extend(f"  {number}. {step}" for number, step in enumerate(suggest_next_steps(view)[:3], start=1))
    recap.extend(["", "COPY THIS PROMPT FOR CLAUDE:", _THIN_RULE, prompt, _THIN_RULE, "",
                  f"Full context saved to: {context_path}", ""])
    lines.extend(builder.echo(text) for text in recap)

    lines.append(builder.pause("Press Enter when you have copied the prompt and are ready to launch Claude Code"))
    lines.append(builder.comment("Launching Claude Code session..."))
    lines.extend(builder.auto_enter())
    lines.append(builder.literal(startup))
    return lines


def write_context_document(document: str, temp_dir: Path, clock: Callable[[], float]) -> Optional[Path]:
    path = temp_dir / f"{CONTEXT_FILE_PREFIX}{int(clock() * 1000)}.md"
    try:
        path.write_text(document, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to write Claude context file {path}: {e}")
        return None
    logger.info(f"Wrote Claude context document to {path}")
    return path


def build_startup_script(
    session: TerminalSession,
    context_view: Optional[ContextView] = None,
    temp_dir: Optional[Path] = None,
    clock: Callable[[], float] = time.time,
) -> Optional[StartupScript]:
    """Build the replay script for a session, or None when there is nothing to replay."""
    dialect = dialect_for(session.shell_type)
    builder = CommandBuilder(dialect)
    body: List[str] = []
    context_path = None

    claude = session.claude_context
    if claude and claude.is_running:
        view = context_view or build_context_view(claude, session.terminal_output)
        temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        context_path = write_context_document(render_context_document(view), temp_dir, clock)
        body = _claude_lines(builder, session, view, context_path)
    else:
        launch_command = extract_launch_command(session.own_command_line)
        relevant = pick_relevant_command(session.running_commands)
        if launch_command:
            body = [
                builder.comment("This terminal was running a command, restarting it..."),
                builder.echo(f"Restoring command: {launch_command}"),
                builder.literal(launch_command),
            ]
        elif relevant:
            body = replay_running_command(builder, relevant)
        elif session.last_executed_command:
            body = [builder.comment("Last executed command:"), builder.comment(session.last_executed_command)]

    if not body:
        return None

    lines = []
    if session.current_directory:
        lines.append(builder.change_directory(session.current_directory))
    lines.extend(body)
    return StartupScript(text="\n".join(lines) + "\n", dialect=dialect, context_path=context_path)
