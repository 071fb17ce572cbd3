"""Filtering of captured terminal sessions.

Three passes run in order: host/child deduplication, the always-on
visibility and ownership filter, and the optional idle filter.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..models.config import Settings
from ..models.session import ShellType, TerminalSession
from .classifier import image_base
from .constants import (
    CLAUDE_KEYWORD,
    DEV_LOADER_NAMES,
    IDE_PROCESS_NAMES,
    POSIX_TERMINAL_HOSTS,
    TRIVIAL_COMMANDS,
)

logger = logging.getLogger(__name__)


@dataclass
class FilterContext:
    """Facts about the capturing process that ownership rules need."""
    app_name: str = "flowstate"
    restore_marker: str = "flowstate_restore"
    own_pid: int = field(default_factory=os.getpid)
    home: Path = field(default_factory=Path.home)

    @classmethod
    def from_settings(cls, settings: Settings) -> 'FilterContext':
        return cls(app_name=settings.app_name, restore_marker=settings.restore_marker)


def _lower(value: Optional[str]) -> str:
    return (value or "").lower()


def is_terminal_host_entry(session: TerminalSession) -> bool:
    return (
        session.shell_type == ShellType.WINDOWS_TERMINAL_HOST
        or image_base(session.process_name) in ("windowsterminal", "wt")
    )


def deduplicate_sessions(sessions: List[TerminalSession]) -> List[TerminalSession]:
    """Drop terminal-host entries whose child shell was captured on its own."""
    child_parents = {
        session.parent_process_id
        for session in sessions
        if not is_terminal_host_entry(session) and session.parent_process_id is not None
    }
    kept = []
    for session in sessions:
        if is_terminal_host_entry(session) and session.process_id in child_parents:
            logger.debug(f"Removed terminal host {session.process_id}: child shell captured separately")
            continue
        kept.append(session)
    return kept


# Default filter rules

def is_restored_by_engine(session: TerminalSession, ctx: FilterContext) -> bool:
    """A shell spawned by an earlier restore carries the marker in its parent."""
    return ctx.restore_marker.lower() in _lower(session.parent_command_line)


def is_self_capture(session: TerminalSession, ctx: FilterContext) -> bool:
    """Detect a shell that is running this application.

    The shell counts as self when it is an ancestor of the capturing
    process, or when one of its processes is named after the app without
    being an interpreter or dev loader. A development checkout run through
    node or python is therefore kept.
    """
    if any(command.process_id == ctx.own_pid for command in session.running_commands):
        return True

    app = ctx.app_name.lower()
    for process in session.running_processes:
        name = process.lower()
        if app in name and not any(loader in name for loader in DEV_LOADER_NAMES):
            return True

    in_app_project = app in _lower(session.current_directory)
    for command in session.running_commands:
        name = command.process_name.lower()
        cmd = command.command_line.lower()
        if in_app_project and "electron" in name and "node" not in cmd and "npm" not in cmd:
            return True
    return False


def is_ide_child(session: TerminalSession, ctx: FilterContext) -> bool:
    parent_name = _lower(session.parent_name)
    parent_cmd = _lower(session.parent_command_line)
    return any(ide in parent_name or ide in parent_cmd for ide in IDE_PROCESS_NAMES)


def has_visible_surface(session: TerminalSession, ctx: FilterContext) -> bool:
    """Check for a window title, a window handle, or a hosting terminal.

    A PowerShell session running an npm or node command also counts, which
    keeps orphaned script-launched dev-server terminals.
    """
    if session.window_title or session.window_handle:
        return True
    parent_name = image_base(session.parent_name or "")
    parent_cmd = _lower(session.parent_command_line)
    if session.is_hosted_in_windows_terminal or "windowsterminal" in parent_name or parent_name == "wt":
        return True
    if "windowsterminal" in parent_cmd:
        return True
    if parent_name in POSIX_TERMINAL_HOSTS:
        return True
    if session.shell_type and session.shell_type.is_powershell:
        own_cmd = _lower(session.own_command_line)
        return any(marker in text for text in (parent_cmd, own_cmd) for marker in ("npm run", "node "))
    return False


FilterRule = Tuple[str, Callable[[TerminalSession, FilterContext], bool]]

# Evaluated after the restored-session check; a match drops the session
DROP_RULES: List[FilterRule] = [
    ("self-capture", is_self_capture),
    ("ide-child", is_ide_child),
    ("no-window", lambda session, ctx: not has_visible_surface(session, ctx)),
]


def drop_reason(session: TerminalSession, ctx: FilterContext) -> Optional[str]:
    """Return the name of the first drop rule matching the session, if any."""
    if is_restored_by_engine(session, ctx):
        return None
    for rule_name, predicate in DROP_RULES:
        if predicate(session, ctx):
            return rule_name
    return None


def apply_default_filter(sessions: List[TerminalSession], ctx: Optional[FilterContext] = None) -> List[TerminalSession]:
    ctx = ctx or FilterContext()
    kept = []
    for session in sessions:
        reason = drop_reason(session, ctx)
        if reason:
            logger.debug(f"Filtered PID {session.process_id} ({session.shell_type}): {reason}")
            continue
        kept.append(session)
    return kept


# Idle filter

def has_claude_signal(session: TerminalSession) -> bool:
    if session.has_claude:
        return True
    texts = [session.window_title or ""]
    texts.extend(session.running_processes)
    texts.extend(command.command_line for command in session.running_commands)
    texts.extend(session.command_history)
    return any(CLAUDE_KEYWORD in text.lower() for text in texts)


def _is_under_home(directory: Optional[str], home: Path) -> bool:
    """True for the home directory itself and anything directly in a home-like tree."""
    if not directory:
        return True
    normalized = directory.replace("\\", "/").rstrip("/").lower()
    home_str = str(home).replace("\\", "/").rstrip("/").lower()
    return normalized == home_str or normalized.startswith(home_str + "/")


def is_meaningful_command(command: Optional[str]) -> bool:
    """A command is meaningful unless it is trivial or a cd back home."""
    if not command or not command.strip():
        return False
    text = command.strip().lower()
    if text in TRIVIAL_COMMANDS:
        return False
    if text.startswith("cd ") and ("~" in text or "users" in text):
        return False
    return True


def is_idle(session: TerminalSession, ctx: FilterContext) -> bool:
    """Check whether a session shows no sign of ongoing work."""
    if has_claude_signal(session):
        return False
    if session.running_commands:
        return False
    if is_meaningful_command(session.last_executed_command):
        return False
    if any(is_meaningful_command(entry) for entry in session.command_history):
        return False
    return _is_under_home(session.current_directory, ctx.home)


def apply_idle_filter(sessions: List[TerminalSession], ctx: Optional[FilterContext] = None) -> List[TerminalSession]:
    ctx = ctx or FilterContext()
    kept = []
    for session in sessions:
        if is_idle(session, ctx):
            logger.debug(f"Smart capture skipped idle terminal {session.process_id}")
            continue
        kept.append(session)
    return kept


def filter_sessions(sessions: List[TerminalSession], settings: Optional[Settings] = None) -> List[TerminalSession]:
    """Run the full filter pipeline over raw captured sessions."""
    settings = settings or Settings()
    ctx = FilterContext.from_settings(settings)

    result = deduplicate_sessions(sessions)
    result = apply_default_filter(result, ctx)
    if settings.smart_capture:
        result = apply_idle_filter(result, ctx)

    logger.info(f"Kept {len(result)} of {len(sessions)} terminal session(s)")
    return result
