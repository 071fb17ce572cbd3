"""Shell session classification.

Classification is expressed as ordered rule tables evaluated over a
``ShellFact`` record, so it can be exercised against fixture process
trees without touching the OS.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..models.session import PowerShellVersion, RunningCommand, ShellType, TerminalSession

logger = logging.getLogger(__name__)


@dataclass
class ShellFact:
    """Everything the classifier needs to know about one shell process."""
    pid: int
    name: str
    exe: str = ""
    cmdline: str = ""
    ppid: Optional[int] = None
    parent_name: str = ""
    parent_cmdline: str = ""
    window_title: Optional[str] = None
    window_handle: int = 0
    parent_window_title: Optional[str] = None
    child_names: List[str] = field(default_factory=list)
    platform: str = field(default_factory=lambda: sys.platform)


def image_base(name: str) -> str:
    """Lower-cased process image name without a .exe suffix."""
    base = (name or "").strip().lower().replace("\\", "/").rsplit("/", 1)[-1]
    return base[:-4] if base.endswith(".exe") else base


def _on_windows(fact: ShellFact) -> bool:
    return fact.platform == "win32"


def _is_core_by_path(fact: ShellFact) -> bool:
    exe = fact.exe.lower()
    return bool(exe) and ("pwsh.exe" in exe or image_base(exe) == "pwsh")


def _is_classic_by_path(fact: ShellFact) -> bool:
    return "powershell.exe" in fact.exe.lower()


def _is_terminal_host(fact: ShellFact) -> bool:
    return image_base(fact.name) in ("windowsterminal", "wt")


ShellRule = Tuple[str, Callable[[ShellFact], bool], ShellType]

# First match wins
SHELL_RULES: List[ShellRule] = [
    ("terminal-host", _is_terminal_host, ShellType.WINDOWS_TERMINAL_HOST),
    ("powershell-core-path", _is_core_by_path, ShellType.POWERSHELL_CORE),
    ("powershell-classic-path", _is_classic_by_path, ShellType.POWERSHELL_CLASSIC),
    ("powershell-core-name", lambda f: image_base(f.name) == "pwsh", ShellType.POWERSHELL_CORE),
    ("powershell-classic-name", lambda f: image_base(f.name) == "powershell", ShellType.POWERSHELL_CLASSIC),
    ("cmd", lambda f: image_base(f.name) == "cmd", ShellType.CMD),
    ("wsl", lambda f: image_base(f.name) == "wsl", ShellType.WSL),
    ("git-bash", lambda f: _on_windows(f) and image_base(f.name) in ("bash", "sh"), ShellType.GIT_BASH),
    ("zsh", lambda f: image_base(f.name) == "zsh", ShellType.ZSH),
    ("bash", lambda f: image_base(f.name) in ("bash", "sh"), ShellType.BASH),
]

# Shell picked for a terminal host from its child tab processes
HOSTED_CHILD_RULES: List[Tuple[str, ShellType]] = [
    ("pwsh", ShellType.POWERSHELL_CORE),
    ("powershell", ShellType.POWERSHELL_CLASSIC),
    ("cmd", ShellType.CMD),
    ("wsl", ShellType.WSL),
    ("bash", ShellType.WSL),
]

_HOST_PARENT_MARKERS = ["windowsterminal.exe", " wt.exe", "\\windowsterminal.exe"]


def classify_shell(fact: ShellFact) -> ShellType:
    """Return the shell dialect of a process, or Unknown."""
    for rule_name, predicate, shell_type in SHELL_RULES:
        if predicate(fact):
            logger.debug(f"PID {fact.pid} matched rule {rule_name}")
            return shell_type
    return ShellType.UNKNOWN


def classify_hosted_shell(child_names: List[str]) -> Optional[ShellType]:
    """Pick the shell running inside a terminal host from its children."""
    bases = [image_base(name) for name in child_names]
    for child_base, shell_type in HOSTED_CHILD_RULES:
        if child_base in bases:
            return shell_type
    return None


def is_hosted_in_windows_terminal(fact: ShellFact) -> bool:
    """Check whether the parent process is Windows Terminal.

    Hosted tabs have no window handle of their own, so this looks only at
    the parent's name and command line.
    """
    parent_base = image_base(fact.parent_name)
    if "windowsterminal" in parent_base or parent_base == "wt":
        return True
    parent_cmd = (fact.parent_cmdline or "").lower()
    return any(marker in parent_cmd for marker in _HOST_PARENT_MARKERS)


def power_shell_version(shell_type: ShellType) -> Optional[PowerShellVersion]:
    if shell_type == ShellType.POWERSHELL_CORE:
        return PowerShellVersion.CORE
    if shell_type == ShellType.POWERSHELL_CLASSIC:
        return PowerShellVersion.CLASSIC
    return None


def classify_session(
    fact: ShellFact,
    running_commands: Optional[List[RunningCommand]] = None,
    current_directory: Optional[str] = None,
    command_history: Optional[List[str]] = None,
    last_executed_command: Optional[str] = None,
    environment_variables: Optional[dict] = None,
) -> TerminalSession:
    """Build a TerminalSession from process facts and probe results."""
    shell_type = classify_shell(fact)
    hosted = is_hosted_in_windows_terminal(fact)

    if shell_type == ShellType.WINDOWS_TERMINAL_HOST:
        # A host entry stands in for the shell in its tab
        hosted = True
        shell_type = classify_hosted_shell(fact.child_names) or ShellType.WINDOWS_TERMINAL_HOST

    window_title = fact.window_title
    if not window_title and hosted:
        window_title = fact.parent_window_title

    running_commands = running_commands or []
    return TerminalSession(
        process_id=fact.pid,
        process_name=fact.name,
        shell_type=shell_type,
        current_directory=current_directory,
        command_history=command_history or [],
        running_processes=[command.process_name for command in running_commands],
        running_commands=running_commands,
        last_executed_command=last_executed_command,
        window_title=window_title,
        window_handle=fact.window_handle,
        parent_process_id=fact.ppid,
        parent_name=fact.parent_name or None,
        parent_command_line=fact.parent_cmdline or None,
        is_hosted_in_windows_terminal=hosted if shell_type.is_windows else None,
        power_shell_version=power_shell_version(shell_type),
        own_command_line=fact.cmdline or None,
        environment_variables=environment_variables or {},
    )
