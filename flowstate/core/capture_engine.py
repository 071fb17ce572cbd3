"""Terminal capture pipeline.

The process arena is read once, every shell in it is probed and
classified, the result is filtered, and sessions running Claude Code are
enriched with their assistant context before being turned into asset
records.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.capture import AssetType
from ..models.config import Settings
from ..models.session import ShellType, TerminalSession
from ..services.process_service import ProcessFact, ProcessInspector, get_last_executed_command
from .capture_filter import filter_sessions
from .claude_context import ClaudeContextResolver, find_claude_command
from .classifier import ShellFact, classify_session, classify_shell
from .conversation_parser import read_terminal_output

logger = logging.getLogger(__name__)


def _basename(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1] or path


def asset_title(session: TerminalSession) -> str:
    if session.window_title:
        return session.window_title
    shell = session.shell_type.value if session.shell_type else "Terminal"
    if session.current_directory:
        return f"{shell} - {_basename(session.current_directory)}"
    return f"{shell} (PID {session.process_id})"


def asset_record(session: TerminalSession) -> Dict[str, Any]:
    """Turn a captured session into a terminal asset record for the store."""
    return {
        "asset_type": AssetType.TERMINAL.value,
        "title": asset_title(session),
        "path": session.current_directory,
        "metadata": session.model_dump(by_alias=True, mode="json"),
    }


class CaptureEngine:
    """Captures the terminal sessions of the current machine."""

    def __init__(
        self,
        inspector: Optional[ProcessInspector] = None,
        resolver: Optional[ClaudeContextResolver] = None,
        settings: Optional[Settings] = None,
        platform: str = sys.platform,
        home: Optional[Path] = None,
    ):
        self.inspector = inspector or ProcessInspector()
        self.resolver = resolver or ClaudeContextResolver(home=home)
        self.settings = settings or Settings()
        self.platform = platform
        self.home = Path(home) if home else self.inspector.home

    def shell_fact(self, fact: ProcessFact) -> ShellFact:
        """Collect the classifier inputs for one process."""
        parent = self.inspector.get_parent(fact.pid)
        title, handle = self.inspector.get_window_info(fact.pid)
        parent_title = None
        if parent and not title:
            parent_title, _ = self.inspector.get_window_info(parent.pid)
        return ShellFact(
            pid=fact.pid,
            name=fact.name,
            exe=fact.exe,
            cmdline=fact.cmdline,
            ppid=fact.ppid,
            parent_name=parent.name if parent else "",
            parent_cmdline=parent.cmdline if parent else "",
            window_title=title,
            window_handle=handle,
            parent_window_title=parent_title,
            child_names=[child.name for child in self.inspector.get_direct_children(fact.pid)],
            platform=self.platform,
        )

    def find_shells(self) -> List[ProcessFact]:
        """Return every process in the arena that classifies as a shell or terminal host."""
        own_pid = os.getpid()
        shells = []
        for fact in self.inspector.snapshot().values():
            if fact.pid == own_pid:
                continue
            probe = ShellFact(pid=fact.pid, name=fact.name, exe=fact.exe, platform=self.platform)
            if classify_shell(probe) != ShellType.UNKNOWN:
                shells.append(fact)
        return sorted(shells, key=lambda shell: shell.pid)

    def probe_session(self, fact: ProcessFact) -> TerminalSession:
        shell = self.shell_fact(fact)
        children = self.inspector.get_children(fact.pid)
        shell_type = classify_shell(shell)
        history = self.inspector.get_command_history(shell_type)
        session = classify_session(
            shell,
            running_commands=children,
            current_directory=self.inspector.resolve_working_directory(fact.pid, children),
            command_history=history,
            last_executed_command=get_last_executed_command(history),
            environment_variables=self.inspector.get_environment(fact.pid),
        )
        return session

    def collect_sessions(self) -> List[TerminalSession]:
        """Probe and classify every shell without filtering."""
        self.inspector.refresh()
        sessions = [self.probe_session(fact) for fact in self.find_shells()]
        logger.info(f"Found {len(sessions)} shell process(es)")
        return sessions

    async def enrich(self, session: TerminalSession) -> TerminalSession:
        """Attach terminal output and Claude Code context where Claude is running."""
        if find_claude_command(session):
            output = await asyncio.to_thread(read_terminal_output, session, self.home)
            if output:
                session = session.model_copy(update={"terminal_output": output})
        context = await self.resolver.resolve(session)
        if context:
            session = session.model_copy(update={"claude_context": context})
        return session

    async def capture_sessions(self) -> List[TerminalSession]:
        """Run the full capture pipeline and return the kept sessions."""
        raw = await asyncio.to_thread(self.collect_sessions)
        kept = filter_sessions(raw, self.settings)
        return [await self.enrich(session) for session in kept]

    async def capture_records(self) -> List[Dict[str, Any]]:
        sessions = await self.capture_sessions()
        return [asset_record(session) for session in sessions]
