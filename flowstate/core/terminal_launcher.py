"""Launch a new terminal window that replays a captured session.

The recipe is chosen strictly from the captured shell type and hosting
flag. A session missing either is refused rather than guessed, and a
failed spawn is reported instead of retried with another shell.
"""

import logging
import os
import re
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..models.session import PowerShellVersion, ShellType, TerminalSession
from ..services.exceptions import LaunchError, MissingMetadataError
from ..utils.path_finder import PathFinder
from .constants import POSIX_EXTRA_PATHS, RESTORE_SCRIPT_PREFIX
from .context_document import ContextView
from .script_builder import CommandBuilder, ShellDialect, StartupScript, build_startup_script, dialect_for

logger = logging.getLogger(__name__)

POWERSHELL_BOOTSTRAP = r"""# Make Node and the npm global bin available to this session
$flowstatePaths = @('C:\Program Files\nodejs', 'C:\Program Files (x86)\nodejs')
if ($env:APPDATA) { $flowstatePaths += (Join-Path $env:APPDATA 'npm') }
foreach ($p in $flowstatePaths) {
  if ((Test-Path $p) -and -not (($env:Path -split ';') -contains $p)) { $env:Path = $env:Path + ';' + $p }
}

# Provide a 'claude' helper when the CLI is not installed globally
if (-not (Get-Command claude -ErrorAction SilentlyContinue)) {
  function global:claude {
    param([Parameter(ValueFromRemainingArguments=$true)] [string[]]$claudeArgs)
    npx --yes @anthropic-ai/claude-code @claudeArgs
  }
}
"""

CMD_BOOTSTRAP = "@echo off\n"

POSIX_BOOTSTRAP = "#!/usr/bin/env bash\nexport PATH=\"$PATH:{extra}\"\n".format(extra=":".join(POSIX_EXTRA_PATHS))


class LaunchState(Enum):
    NOT_STARTED = "not_started"
    SCRIPT_PREPARED = "script_prepared"
    LAUNCHED = "launched"
    FAILED = "failed"


@dataclass
class LaunchResult:
    """What a successful launch produced."""
    script_path: Path
    context_path: Optional[Path] = None
    argv: List[str] = field(default_factory=list)


Spawner = Callable[..., None]


def spawn_detached(argv: List[str], cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> None:
    """Start a process with no retained handle and no inherited stdio."""
    kwargs = {
        "cwd": cwd,
        "env": env,
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    subprocess.Popen(argv, **kwargs)


def to_wsl_path(path: str) -> str:
    """Translate C:\\dir\\file to /mnt/c/dir/file."""
    match = re.match(r"^([A-Za-z]):[\\/](.*)$", path)
    if not match:
        return path.replace("\\", "/")
    return f"/mnt/{match.group(1).lower()}/{match.group(2).replace(chr(92), '/')}"


def powershell_executable(session: TerminalSession) -> str:
    if session.shell_type == ShellType.POWERSHELL_CORE:
        return "pwsh.exe"
    if session.shell_type == ShellType.POWERSHELL_CLASSIC:
        return "powershell.exe"
    if session.power_shell_version == PowerShellVersion.CORE:
        return "pwsh.exe"
    return "powershell.exe"


class TerminalLauncher:
    """Prepares and launches the restore of one terminal session."""

    def __init__(
        self,
        session: TerminalSession,
        temp_dir: Optional[Path] = None,
        path_finder=PathFinder,
        spawner: Spawner = spawn_detached,
        platform: str = sys.platform,
        clock: Callable[[], float] = time.time,
        context_view: Optional[ContextView] = None,
    ):
        self.session = session
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.path_finder = path_finder
        self.spawner = spawner
        self.platform = platform
        self.clock = clock
        self.context_view = context_view
        self.state = LaunchState.NOT_STARTED

    @property
    def dialect(self) -> ShellDialect:
        return dialect_for(self.session.shell_type)

    @property
    def working_directory(self) -> str:
        return self.session.current_directory or str(Path.home())

    def validate(self) -> None:
        """Refuse sessions that lack the fields needed to pick a recipe.

        Raises:
            MissingMetadataError: If shell type, hosting flag or PowerShell variant is missing
        """
        session = self.session
        if session.shell_type is None:
            if session.corrupted:
                message = "Terminal metadata is corrupted: shellType could not be read. Re-capture this terminal."
            elif session.capture_note and "basic" in session.capture_note.lower():
                message = (
                    "Terminal was captured with basic detection and has no shellType. "
                    "Re-capture it to enable restoration."
                )
            else:
                message = "Terminal metadata is missing shellType; refusing to guess the shell."
            raise MissingMetadataError(message)

        if session.shell_type in (ShellType.UNKNOWN, ShellType.WINDOWS_TERMINAL_HOST):
            raise MissingMetadataError(f"Cannot restore a terminal of type {session.shell_type.value}")

        missing = session.missing_restore_fields()
        if missing:
            raise MissingMetadataError(
                f"Terminal metadata is missing {', '.join(missing)} for {session.shell_type.value}"
            )

    def _bootstrap(self) -> str:
        if self.dialect == ShellDialect.POWERSHELL:
            return POWERSHELL_BOOTSTRAP
        if self.dialect == ShellDialect.CMD:
            return CMD_BOOTSTRAP
        return POSIX_BOOTSTRAP

    def prepare(self, script: Optional[StartupScript]) -> Path:
        """Write the script to the temp directory and return its real path."""
        dialect = self.dialect
        body = script.text if script else CommandBuilder(dialect).change_directory(self.working_directory) + "\n"
        content = self._bootstrap() + "\n" + body
        path = self.temp_dir / f"{RESTORE_SCRIPT_PREFIX}{int(self.clock() * 1000)}{dialect.extension}"

        try:
            if dialect == ShellDialect.POWERSHELL:
                # Windows PowerShell 5 needs the BOM to read UTF-8
                path.write_text(content, encoding="utf-8-sig")
            elif dialect == ShellDialect.CMD:
                path.write_text(content, encoding="utf-8", newline="\r\n")
            else:
                path.write_text(content, encoding="utf-8")
                os.chmod(path, 0o755)
        except OSError as e:
            self.state = LaunchState.FAILED
            raise LaunchError(f"Could not write restore script {path}: {e}") from e

        self.state = LaunchState.SCRIPT_PREPARED
        logger.debug(f"Prepared restore script {path}")
        return path.resolve()

    def _title(self) -> str:
        base = self.session.window_title or self.session.shell_type.value
        return f"{base} Restore"

    def _hosted(self, shell_argv: List[str]) -> List[str]:
        wt = self.path_finder.find_windows_terminal()
        return [wt, "-w", "new", "--title", self._title(), "-d", self.working_directory] + shell_argv

    def _posix_terminal(self, script: str) -> List[str]:
        if self.platform == "darwin":
            return ["open", "-a", "Terminal", script]
        terminal = self.path_finder.find_linux_terminal()
        if terminal == "gnome-terminal":
            return [terminal, f"--working-directory={self.working_directory}", "--", "bash", "--init-file", script]
        if terminal == "konsole":
            return [terminal, "--workdir", self.working_directory, "-e", "bash", "--init-file", script]
        if terminal == "xterm":
            return [terminal, "-e", "bash", "--init-file", script]
        raise LaunchError("No supported terminal emulator found (gnome-terminal, konsole, xterm)")

    def build_argv(self, script_path: Path) -> List[str]:
        """Pick the launch recipe for the captured dialect and hosting."""
        script = str(script_path)
        shell_type = self.session.shell_type
        hosted = bool(self.session.is_hosted_in_windows_terminal)

        if shell_type.is_powershell:
            exe = powershell_executable(self.session)
            if hosted:
                return self._hosted([exe, "-NoExit", "-NoProfile", "-ExecutionPolicy", "Bypass", "-File", script])
            return ["cmd", "/c", "start", self._title(), exe, "-NoExit", "-ExecutionPolicy", "Bypass", "-File", script]

        if shell_type == ShellType.CMD:
            if hosted:
                return self._hosted(["cmd.exe", "/K", script])
            return ["cmd.exe", "/c", "start", self._title(), "cmd.exe", "/K", script]

        if shell_type == ShellType.GIT_BASH:
            if hosted:
                return self._hosted(["bash.exe", "--init-file", script])
            return [self.path_finder.find_git_bash(), "--init-file", script]

        if shell_type == ShellType.WSL:
            wsl_argv = ["wsl", "bash", "--init-file", to_wsl_path(script)]
            if hosted:
                return self._hosted(wsl_argv)
            return ["cmd.exe", "/c", "start", self._title()] + wsl_argv

        return self._posix_terminal(script)

    def launch(self, script_path: Path) -> List[str]:
        """Spawn the terminal detached and return the argv used.

        Raises:
            LaunchError: If no recipe applies or the spawn fails
        """
        try:
            argv = self.build_argv(script_path)
        except LaunchError:
            self.state = LaunchState.FAILED
            raise

        cwd = self.working_directory if os.path.isdir(self.working_directory) else None
        logger.info(f"Launching {self.session.shell_type.value} terminal: {' '.join(argv)}")
        try:
            self.spawner(argv, cwd=cwd, env=self.path_finder.augmented_environment())
        except OSError as e:
            self.state = LaunchState.FAILED
            raise LaunchError(f"Failed to launch {argv[0]}: {e}") from e

        self.state = LaunchState.LAUNCHED
        return argv

    def run(self) -> LaunchResult:
        """Validate, build the startup script, write it and launch it."""
        try:
            self.validate()
        except MissingMetadataError:
            self.state = LaunchState.FAILED
            raise

        script = build_startup_script(
            self.session, context_view=self.context_view, temp_dir=self.temp_dir, clock=self.clock
        )
        script_path = self.prepare(script)
        argv = self.launch(script_path)
        return LaunchResult(
            script_path=script_path,
            context_path=script.context_path if script else None,
            argv=argv,
        )
