"""Reconstruct a Claude Code exchange from raw terminal text."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..models.session import TerminalSession
from .constants import CLAUDE_LOG_DIRS, TERMINAL_OUTPUT_TAIL_BYTES

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"

MAX_MESSAGE_CHARS = 500

_PROMPT_LINE = re.compile(r"^PS\s+")
_USER_MARKER = re.compile(r"^[>?]")
_ASSISTANT_OPENER = re.compile(r"^(I'll|Let me|I'm|I can|Based on|Looking at|Here|This|The)", re.IGNORECASE)
_TOOL_CALL_MARKER = "<function_calls>"


@dataclass
class Message:
    """One speaker turn; contiguous lines accumulate into ``lines``."""
    role: str
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)[:MAX_MESSAGE_CHARS]


def _line_role(line: str, previous: Optional[str]) -> Optional[str]:
    if _USER_MARKER.match(line):
        return USER
    if previous == ASSISTANT and len(line) > 10 and line.endswith("?"):
        return USER
    if _ASSISTANT_OPENER.match(line) or _TOOL_CALL_MARKER in line:
        return ASSISTANT
    if previous == USER and len(line) > 20:
        return ASSISTANT
    return None


def parse_conversation(raw_text: str) -> List[Message]:
    """Split terminal text into alternating user and assistant messages."""
    messages: List[Message] = []
    current: Optional[Message] = None

    for raw_line in (raw_text or "").split("\n"):
        line = raw_line.strip()
        if not line or _PROMPT_LINE.match(line):
            continue

        role = _line_role(line, current.role if current else None)
        if role == USER:
            if current:
                messages.append(current)
            current = Message(USER, [re.sub(r"^>\s*", "", line)])
        elif role == ASSISTANT:
            if current:
                messages.append(current)
            current = Message(ASSISTANT, [line])
        elif current:
            current.lines.append(line)

    if current:
        messages.append(current)
    return messages


def last_exchanges(messages: List[Message], max_exchanges: int = 3) -> List[Message]:
    """Keep the tail of the conversation covering the last N user messages."""
    kept: List[Message] = []
    user_count = 0
    for message in reversed(messages):
        if user_count >= max_exchanges:
            break
        kept.insert(0, message)
        if message.role == USER:
            user_count += 1
    return kept


def format_conversation(raw_text: str, max_exchanges: int = 3) -> str:
    """Render the last exchanges as markdown, or an empty string."""
    rendered = []
    for message in last_exchanges(parse_conversation(raw_text), max_exchanges):
        speaker = "**You:**" if message.role == USER else "**Claude:**"
        rendered.append(f"{speaker} {message.text}")
    return "\n\n".join(rendered)


def _tail(path: Path, size: int = TERMINAL_OUTPUT_TAIL_BYTES) -> str:
    with open(path, "rb") as f:
        f.seek(0, 2)
        length = f.tell()
        f.seek(max(0, length - size))
        return f.read().decode("utf-8", errors="replace")


def _newest_file(directory: Path, prefix: str = "") -> Optional[Path]:
    if not directory.is_dir():
        return None
    files = [p for p in directory.iterdir() if p.is_file() and p.name.startswith(prefix)]
    if not files:
        return None
    return max(files, key=lambda p: p.stat().st_mtime)


def read_terminal_output(session: TerminalSession, home: Optional[Path] = None) -> Optional[str]:
    """Tail the newest PowerShell transcript or Claude log file, if any.

    Neither source is keyed by process, so with several Claude terminals
    open each may receive the output of the most recent one.
    """
    home = Path(home) if home else Path.home()
    candidates = []
    if session.shell_type and session.shell_type.is_powershell:
        candidates.append((home / "Documents" / "PowerShell_transcript", "PowerShell_transcript"))
    candidates.extend((home / log_dir, "") for log_dir in CLAUDE_LOG_DIRS)

    for directory, prefix in candidates:
        try:
            newest = _newest_file(directory, prefix)
            if newest:
                output = _tail(newest)
                logger.debug(f"Captured {len(output)} chars of terminal output from {newest}")
                return output
        except OSError as e:
            logger.debug(f"Could not read terminal output from {directory}: {e}")
    return None
