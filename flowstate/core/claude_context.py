"""Claude Code context resolution for captured terminal sessions."""

import asyncio
import logging
import os
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

from ..models.claude import ClaudeCodeContext, GitStatus
from ..models.session import RunningCommand, TerminalSession
from ..services.exceptions import FlowStateError, GitServiceError
from ..services.git_service import GitService
from .constants import (
    CLAUDE_KEYWORD,
    DEFAULT_CLAUDE_COMMAND,
    GIT_PROBE_TIMEOUT,
    GIT_STATUS_TIMEOUT,
    PROJECT_FILE_LIMIT,
    PROJECT_FILE_MAX_DEPTH,
    PROJECT_FILES_TIMEOUT,
    PROJECT_PARENT_DIRS,
    RECENT_COMMIT_WINDOW_SECONDS,
    RECENT_FILE_EXTENSIONS,
    RECENT_FILE_LIMIT,
    RECENT_FILE_WINDOW_MINUTES,
    RECENT_FILES_TIMEOUT,
    SKIPPED_DIRS,
    SOURCE_FILE_EXTENSIONS,
)
from .conversation_parser import format_conversation

logger = logging.getLogger(__name__)

_STARTUP_COMMAND = re.compile(r"(?:npx\s+)?claude(?:\s+\S+)*", re.IGNORECASE)
_WORKSPACE_FLAGS = [
    re.compile(r"--(?:path|cwd)[=\s]+[\"']?([^\"']+?)[\"']?(?:\s+--|\s*$)"),
    re.compile(r"claude\s+code\s+[\"']?([^\"'\s]+)[\"']?", re.IGNORECASE),
]
_HISTORY_CD = re.compile(r"^(?:cd|set-location|sl|chdir)\s+[\"']?([^\"']+)[\"']?", re.IGNORECASE)


async def with_timeout(func: Callable[..., Any], timeout: float, default: Any, *args: Any) -> Any:
    """Run a blocking call in a worker thread, returning ``default`` on timeout or failure.

    A timed-out thread is not interrupted; only the caller stops waiting.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)
    except asyncio.TimeoutError:
        logger.debug(f"{getattr(func, '__name__', func)} timed out after {timeout}s")
        return default
    except (OSError, FlowStateError) as e:
        logger.debug(f"{getattr(func, '__name__', func)} failed: {e}")
        return default


def find_claude_command(session: TerminalSession) -> Optional[RunningCommand]:
    """Return the running command that looks like Claude Code, if any."""
    for command in session.running_commands:
        if CLAUDE_KEYWORD in command.command_line.lower() or CLAUDE_KEYWORD in command.process_name.lower():
            return command
    if any(CLAUDE_KEYWORD in name.lower() for name in session.running_processes):
        for command in session.running_commands:
            line = command.command_line.lower()
            if "node" in line and CLAUDE_KEYWORD in line:
                return command
    return None


def extract_startup_command(command_line: str) -> str:
    match = _STARTUP_COMMAND.search(command_line or "")
    if match:
        return match.group(0).strip()
    return DEFAULT_CLAUDE_COMMAND


def extract_workspace_from_command(command_line: str) -> Optional[str]:
    """Find an explicit workspace in a Claude command line (--path, --cwd, claude code <dir>)."""
    for pattern in _WORKSPACE_FLAGS:
        match = pattern.search(command_line or "")
        if match:
            return match.group(1).strip()
    return None


def history_before_start(history: List[str]) -> List[str]:
    """Commands run before Claude was launched: up to 10, or the last 5 if it never was."""
    for index, entry in enumerate(history):
        if CLAUDE_KEYWORD in entry.lower():
            return history[max(0, index - 10):index]
    return history[-5:]


def describe_context(working_directory: str, git_status: Optional[GitStatus]) -> str:
    hint = f"Working in {working_directory}"
    if git_status:
        changed = len(git_status.modified_files) + len(git_status.untracked_files)
        hint += f" on branch {git_status.branch} with {changed} uncommitted file(s)"
    return hint


def _same_path(left: str, right: str) -> bool:
    def normalize(value: str) -> str:
        return value.replace("\\", "/").rstrip("/").lower()
    return normalize(left) == normalize(right)


def _relative(path: str, root: str) -> str:
    return "./" + os.path.relpath(path, root).replace("\\", "/")


def get_recently_modified_files(directory: str, minutes: int = RECENT_FILE_WINDOW_MINUTES) -> List[str]:
    """Files under ``directory`` changed in the last ``minutes``, relative as ./path."""
    if not directory or not os.path.isdir(directory):
        return []
    cutoff = time.time() - minutes * 60
    found = []
    for root, dirs, files in os.walk(directory):
        dirs[:] = [d for d in dirs if d not in SKIPPED_DIRS]
        for name in files:
            if os.path.splitext(name)[1] not in RECENT_FILE_EXTENSIONS:
                continue
            full_path = os.path.join(root, name)
            try:
                if os.path.getmtime(full_path) > cutoff:
                    found.append(_relative(full_path, directory))
            except OSError:
                continue
            if len(found) >= RECENT_FILE_LIMIT:
                return found
    return found


def get_project_files(directory: str) -> List[str]:
    """Source files up to three levels deep, skipping build output and dot entries."""
    if not directory or not os.path.isdir(directory):
        return []
    files: List[str] = []

    def read_dir(current: str, depth: int) -> None:
        if depth > PROJECT_FILE_MAX_DEPTH:
            return
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if entry.name in SKIPPED_DIRS or entry.name.startswith("."):
                continue
            if entry.is_dir():
                read_dir(entry.path, depth + 1)
            elif entry.is_file() and os.path.splitext(entry.name)[1] in SOURCE_FILE_EXTENSIONS:
                files.append(_relative(entry.path, directory))

    read_dir(directory, 0)
    return files[:PROJECT_FILE_LIMIT]


class ClaudeContextResolver:
    """Builds a ClaudeCodeContext for a session that is running Claude Code."""

    def __init__(
        self,
        home: Optional[Path] = None,
        git_factory: Callable[..., GitService] = GitService,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.home = Path(home) if home else Path.home()
        self.git_factory = git_factory
        self.now = now

    def get_git_status(self, directory: str) -> Optional[GitStatus]:
        if not directory or not GitService.has_git_dir(Path(directory)):
            return None
        try:
            return self.git_factory(Path(directory), timeout=GIT_STATUS_TIMEOUT).get_status()
        except GitServiceError as e:
            logger.debug(f"Git status unavailable for {directory}: {e}")
            return None

    def _has_recent_activity(self, repo: Path) -> bool:
        try:
            git = self.git_factory(repo, timeout=GIT_PROBE_TIMEOUT)
            if git.get_uncommitted_changes():
                logger.info(f"Found git repository with uncommitted changes: {repo}")
                return True
            committed_at = git.get_last_commit_timestamp()
        except GitServiceError as e:
            logger.debug(f"Skipping {repo}: {e}")
            return False
        if committed_at and committed_at > time.time() - RECENT_COMMIT_WINDOW_SECONDS:
            logger.info(f"Found git repository with recent commit: {repo}")
            return True
        return False

    def find_active_repository(self) -> Optional[str]:
        """Scan the usual project folders under home for a repo with recent work."""
        for parent_name in PROJECT_PARENT_DIRS:
            parent = self.home / parent_name
            if not parent.is_dir():
                continue
            try:
                candidates = sorted(
                    child for child in parent.iterdir()
                    if child.is_dir() and not child.name.startswith(".") and GitService.has_git_dir(child)
                )
            except OSError as e:
                logger.debug(f"Could not scan {parent}: {e}")
                continue
            for repo in candidates:
                if self._has_recent_activity(repo):
                    return str(repo)
        return None

    @staticmethod
    def directory_from_history(history: List[str], base: str) -> Optional[str]:
        """Resolve the most recent cd in history against ``base``; None if it does not exist."""
        for entry in reversed(history):
            match = _HISTORY_CD.match(entry.strip())
            if not match:
                continue
            target = match.group(1).strip().replace("\\", "/")
            if not os.path.isabs(target) and not re.match(r"^[A-Za-z]:/", target):
                target = os.path.join(base.replace("\\", "/"), target)
            target = os.path.normpath(target)
            if os.path.isdir(target):
                return target
            return None
        return None

    async def resolve_working_directory(self, session: TerminalSession, command: RunningCommand) -> Optional[str]:
        directory = extract_workspace_from_command(command.command_line) or session.current_directory
        if not directory:
            return None
        if not _same_path(directory, str(self.home)):
            return directory

        logger.info("Claude Code appears to run in the home directory, searching for the project")
        found = await asyncio.to_thread(self.find_active_repository)
        if not found:
            found = self.directory_from_history(session.command_history, directory)
        if found:
            logger.info(f"Detected actual working directory: {found}")
            return found
        logger.info("Could not detect project directory, using home directory")
        return directory

    async def resolve(self, session: TerminalSession) -> Optional[ClaudeCodeContext]:
        """Return the Claude context for a session, or None if Claude is not running there."""
        command = find_claude_command(session)
        if not command:
            return None

        directory = await self.resolve_working_directory(session, command)
        if not directory:
            return None
        logger.info(f"Detected Claude Code session in: {directory}")

        recent_files = await with_timeout(get_recently_modified_files, RECENT_FILES_TIMEOUT, [], directory)
        git_status = await with_timeout(self.get_git_status, GIT_STATUS_TIMEOUT, None, directory)
        project_files = await with_timeout(get_project_files, PROJECT_FILES_TIMEOUT, [], directory)
        logger.info(
            f"Claude Code context captured: {len(recent_files)} recent files, {len(project_files)} project files"
        )

        context_hint = ""
        if session.terminal_output:
            context_hint = format_conversation(session.terminal_output)
        if not context_hint:
            context_hint = describe_context(directory, git_status)

        return ClaudeCodeContext(
            is_running=True,
            working_directory=directory,
            project_files=project_files,
            recently_modified_files=recent_files,
            git_status=git_status,
            session_start_time=self.now().isoformat(),
            context_hint=context_hint,
            startup_command=extract_startup_command(command.command_line),
            command_history_before_start=history_before_start(session.command_history),
        )
