"""Process tree inspection built on psutil.

Every public query is best-effort: a process that vanished, a denied
permission or a failing helper tool degrades the single value being asked
for and never raises past the method boundary.
"""

import json
import logging
import os
import re
import subprocess
import sys
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import psutil

from ..core.constants import CAPTURED_ENV_VARS, HISTORY_LINE_LIMIT, MAX_PROCESS_TREE_DEPTH
from ..models.session import RunningCommand, ShellType
from .exceptions import CaptureError

logger = logging.getLogger(__name__)

_PROCESS_ATTRS = ["pid", "ppid", "name", "exe", "cmdline", "create_time"]

# Working-directory hints found in child command lines, tried in order
_CLAUDE_FROM_DIR = re.compile(
    r"claude.*?\b(?:from|in)\s+[\"']?((?:[A-Za-z]:[\\/]|/)[^\"']+?)[\"']?\s*$", re.IGNORECASE
)
_NODE_SCRIPT = re.compile(
    r"node(?:\.exe)?[\"']?\s+[\"']?((?:[A-Za-z]:[\\/]|/)[^\"'\s]+\.(?:js|mjs|cjs|ts))", re.IGNORECASE
)
_PYTHON_SCRIPT = re.compile(
    r"python[0-9.]*(?:\.exe)?[\"']?\s+[\"']?((?:[A-Za-z]:[\\/]|/)[^\"'\s]+\.py)", re.IGNORECASE
)
_DIR_FLAG = re.compile(
    r"--(?:cwd|working-directory|path)[=\s]+(?:\"([^\"]+)\"|'([^']+)'|(\S+))", re.IGNORECASE
)

# Directory hints in a shell's own command line
_OWN_DIR_PATTERNS = [
    re.compile(r"-WorkingDirectory\s+(?:\"([^\"]+)\"|'([^']+)'|(\S+))", re.IGNORECASE),
    re.compile(r"\bcd\s+(?:/d\s+)?(?:\"([^\"]+)\"|'([^']+)'|([^\s;&]+))", re.IGNORECASE),
    re.compile(r"Set-Location\s+(?:-LiteralPath\s+)?(?:\"([^\"]+)\"|'([^']+)'|([^\s;]+))", re.IGNORECASE),
]

_ZSH_EXTENDED_PREFIX = re.compile(r"^: \d+:\d+;")


@dataclass
class ProcessFact:
    """Structured facts about one process, as seen in a single snapshot."""
    pid: int
    ppid: int
    name: str
    exe: str = ""
    cmdline: str = ""
    create_time: float = 0.0


def _first_group(match: Optional[re.Match]) -> Optional[str]:
    if not match:
        return None
    for group in match.groups():
        if group:
            return group.strip()
    return None


def _is_absolute(path: str) -> bool:
    return bool(re.match(r"^(?:[A-Za-z]:[\\/]|/|\\\\)", path))


def _dirname(path: str) -> str:
    """Directory part of a path written with either separator."""
    index = max(path.rfind("/"), path.rfind("\\"))
    if index <= 0:
        return path
    if index == 2 and path[1] == ":":
        return path[:3]
    return path[:index]


def extract_directory_from_child(command_line: str) -> Optional[str]:
    """Find a working directory hinted at by a child process command line."""
    if not command_line:
        return None
    lowered = command_line.lower()

    if "node" in lowered and "claude" in lowered:
        found = _first_group(_CLAUDE_FROM_DIR.search(command_line))
        if found and _is_absolute(found):
            return found

    script = _first_group(_NODE_SCRIPT.search(command_line))
    if script and "node_modules" not in script:
        return _dirname(script)

    script = _first_group(_PYTHON_SCRIPT.search(command_line))
    if script:
        return _dirname(script)

    found = _first_group(_DIR_FLAG.search(command_line))
    if found and _is_absolute(found):
        return found
    return None


def extract_directory_from_own_command(command_line: str) -> Optional[str]:
    """Find an explicit directory in a shell's own command line."""
    if not command_line:
        return None
    for pattern in _OWN_DIR_PATTERNS:
        found = _first_group(pattern.search(command_line))
        if found and _is_absolute(found):
            return found
    return None


def get_last_executed_command(history: List[str]) -> Optional[str]:
    """Return the most recent history entry that is not empty or a comment."""
    for entry in reversed(history):
        stripped = entry.strip()
        if stripped and not stripped.startswith("#"):
            return stripped
    return None


class ProcessInspector:
    """Queries process lists and parent/child relations.

    A snapshot of all processes is taken lazily and reused until
    ``refresh()`` is called, so one capture sees one consistent arena.
    """

    def __init__(self, facts: Optional[Dict[int, ProcessFact]] = None, home: Optional[Path] = None):
        self._facts = facts
        self._children: Optional[Dict[int, List[int]]] = None
        self.home = Path(home) if home else Path.home()

    def refresh(self) -> None:
        self._facts = None
        self._children = None

    def snapshot(self) -> Dict[int, ProcessFact]:
        """Return the process arena, reading it from the OS on first use."""
        if self._facts is None:
            self._facts = self._read_processes()
        return self._facts

    def _read_processes(self) -> Dict[int, ProcessFact]:
        facts = {}
        try:
            for proc in psutil.process_iter(_PROCESS_ATTRS):
                info = proc.info
                cmdline = info.get("cmdline") or []
                facts[info["pid"]] = ProcessFact(
                    pid=info["pid"],
                    ppid=info.get("ppid") or 0,
                    name=info.get("name") or "",
                    exe=info.get("exe") or "",
                    cmdline=" ".join(cmdline),
                    create_time=info.get("create_time") or 0.0,
                )
        except psutil.Error as e:
            logger.debug(f"Process enumeration failed: {e}")
        return facts

    def _children_index(self) -> Dict[int, List[int]]:
        if self._children is None:
            index: Dict[int, List[int]] = {}
            for fact in self.snapshot().values():
                if fact.ppid == fact.pid:
                    continue
                index.setdefault(fact.ppid, []).append(fact.pid)
            self._children = index
        return self._children

    def get_process(self, pid: int) -> Optional[ProcessFact]:
        return self.snapshot().get(pid)

    def get_parent(self, pid: int) -> Optional[ProcessFact]:
        fact = self.get_process(pid)
        if not fact or fact.ppid == pid:
            return None
        return self.get_process(fact.ppid)

    def get_direct_children(self, pid: int) -> List[ProcessFact]:
        arena = self.snapshot()
        return [arena[child] for child in self._children_index().get(pid, []) if child in arena]

    def get_command_line(self, pid: int) -> str:
        fact = self.get_process(pid)
        return fact.cmdline if fact else ""

    def get_children(self, pid: int, max_depth: int = MAX_PROCESS_TREE_DEPTH) -> List[RunningCommand]:
        """Walk descendants breadth-first, at most ``max_depth`` levels down.

        The visited set guards against cycles and self-parenting entries that
        the OS can report transiently.
        """
        arena = self.snapshot()
        index = self._children_index()
        now = time.time()
        visited = {pid}
        queue = deque([(pid, 0)])
        commands = []

        while queue:
            current, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for child_pid in index.get(current, []):
                if child_pid in visited or child_pid not in arena:
                    continue
                visited.add(child_pid)
                fact = arena[child_pid]
                elapsed = max(0, int((now - fact.create_time) * 1000)) if fact.create_time else 0
                commands.append(RunningCommand(
                    process_id=fact.pid,
                    process_name=fact.name,
                    command_line=fact.cmdline,
                    execution_time_ms=elapsed,
                ))
                queue.append((child_pid, depth + 1))
        return commands

    def get_process_cwd(self, pid: int) -> Optional[str]:
        try:
            return psutil.Process(pid).cwd() or None
        except (psutil.Error, OSError) as e:
            logger.debug(f"Could not read cwd of {pid}: {e}")
            return None

    def resolve_working_directory(self, pid: int, children: Optional[List[RunningCommand]] = None) -> str:
        """Resolve where a shell is working.

        Tries child command lines, then the shell's own command line, then
        the OS-reported cwd, then the home directory.
        """
        if children is None:
            children = self.get_children(pid)
        for child in children:
            found = extract_directory_from_child(child.command_line)
            if found:
                return found

        found = extract_directory_from_own_command(self.get_command_line(pid))
        if found:
            return found

        return self.get_process_cwd(pid) or str(self.home)

    def get_window_info(self, pid: int) -> Tuple[Optional[str], int]:
        """Return (main window title, main window handle) for a process."""
        if sys.platform != "win32":
            return None, 0
        script = (
            f"Get-Process -Id {int(pid)} | Select-Object MainWindowTitle,"
            " @{n='Handle';e={[int64]$_.MainWindowHandle}} | ConvertTo-Json -Compress"
        )
        try:
            result = subprocess.run(
                ["powershell", "-NoProfile", "-Command", script],
                capture_output=True,
                text=True,
                timeout=5,
            )
            if result.returncode != 0 or not result.stdout.strip():
                raise CaptureError(result.stderr.strip() or "no output")
            data = json.loads(result.stdout)
        except (CaptureError, OSError, subprocess.SubprocessError, json.JSONDecodeError) as e:
            logger.debug(f"Window lookup failed for {pid}: {e}")
            return None, 0
        title = (data.get("MainWindowTitle") or "").strip() or None
        return title, int(data.get("Handle") or 0)

    def get_environment(self, pid: int) -> Dict[str, str]:
        """Return the allow-listed environment variables of a process."""
        try:
            environ = psutil.Process(pid).environ()
        except (psutil.Error, OSError) as e:
            logger.debug(f"Could not read environment of {pid}: {e}")
            return {}
        return {key: value for key, value in environ.items() if key.upper() in CAPTURED_ENV_VARS}

    def history_file(self, shell_type: Optional[ShellType]) -> Optional[Path]:
        if shell_type is None:
            return None
        if shell_type.is_powershell:
            appdata = os.environ.get("APPDATA") or str(self.home / "AppData" / "Roaming")
            return (Path(appdata) / "Microsoft" / "Windows" / "PowerShell"
                    / "PSReadLine" / "ConsoleHost_history.txt")
        if shell_type == ShellType.ZSH:
            return self.home / ".zsh_history"
        if shell_type in (ShellType.GIT_BASH, ShellType.WSL, ShellType.BASH):
            return self.home / ".bash_history"
        return None

    def get_command_history(self, shell_type: Optional[ShellType], limit: int = HISTORY_LINE_LIMIT) -> List[str]:
        """Read the last ``limit`` commands from the shell's history file."""
        path = self.history_file(shell_type)
        if not path or not path.exists():
            return []
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.debug(f"Could not read history {path}: {e}")
            return []
        entries = [_ZSH_EXTENDED_PREFIX.sub("", line).strip() for line in lines]
        return [entry for entry in entries if entry][-limit:]

    def find_processes(self, keyword: str) -> List[ProcessFact]:
        """Find live processes whose name or command line contains ``keyword``."""
        keyword = keyword.lower()
        own_pid = os.getpid()
        matches = []
        for fact in self._read_processes().values():
            if fact.pid == own_pid:
                continue
            if keyword in fact.name.lower() or keyword in fact.cmdline.lower():
                matches.append(fact)
        return matches
