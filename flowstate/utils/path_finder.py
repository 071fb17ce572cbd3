"""Utilities for finding paths and executables."""

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional

from ..core.constants import (
    EDITOR_COMMANDS,
    EDITOR_FALLBACK_PATHS,
    GIT_BASH_PATHS,
    LINUX_TERMINAL_EMULATORS,
    POSIX_EXTRA_PATHS,
    WINDOWS_EXTRA_PATHS,
    WINDOWS_TERMINAL_PATHS,
)

logger = logging.getLogger(__name__)


class PathFinder:
    """Utility class for finding paths and executables."""

    @staticmethod
    def _env_path(var: str, relative: str) -> Optional[Path]:
        base = os.environ.get(var)
        if not base:
            return None
        return Path(base) / relative

    @staticmethod
    def which(name: str) -> Optional[str]:
        """Locate an executable with where/which, then on PATH."""
        lookup = ["where", name] if sys.platform == "win32" else ["which", name]
        try:
            result = subprocess.run(lookup, capture_output=True, text=True, timeout=5)
            if result.returncode == 0 and result.stdout.strip():
                return result.stdout.strip().splitlines()[0]
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"{lookup[0]} {name} failed: {e}")

        return shutil.which(name)

    @staticmethod
    def find_windows_terminal() -> str:
        """Find wt.exe, falling back to the bare name."""
        for var, relative in WINDOWS_TERMINAL_PATHS:
            path = PathFinder._env_path(var, relative)
            if path and path.exists():
                return str(path)

        found = PathFinder.which("wt.exe")
        if found:
            return found

        return "wt.exe"

    @staticmethod
    def find_git_bash() -> str:
        for path in GIT_BASH_PATHS:
            if os.path.exists(path):
                return path
        return PathFinder.which("git-bash.exe") or "git-bash.exe"

    @staticmethod
    def find_linux_terminal() -> Optional[str]:
        """Return the first installed terminal emulator."""
        for name in LINUX_TERMINAL_EMULATORS:
            if shutil.which(name):
                return name
        return None

    @staticmethod
    def find_editor(ide_name: str) -> Optional[str]:
        """Find the launcher command for an editor, or its installed executable."""
        command = EDITOR_COMMANDS.get(ide_name)
        if command and PathFinder.which(command):
            return command

        relative = EDITOR_FALLBACK_PATHS.get(ide_name)
        if relative:
            path = PathFinder._env_path("LOCALAPPDATA", relative)
            if path and path.exists():
                return str(path)
        return command

    @staticmethod
    def extra_path_entries() -> List[str]:
        if sys.platform == "win32":
            entries = [PathFinder._env_path(var, relative) for var, relative in WINDOWS_EXTRA_PATHS]
            return [str(entry) for entry in entries if entry]
        return list(POSIX_EXTRA_PATHS)

    @staticmethod
    def augmented_environment(base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Copy of the environment with tool directories appended to PATH."""
        env = dict(os.environ if base is None else base)
        current = env.get("PATH", "")
        parts = [part for part in current.split(os.pathsep) if part]
        for entry in PathFinder.extra_path_entries():
            if entry not in parts:
                parts.append(entry)
        env["PATH"] = os.pathsep.join(parts)
        return env
