"""Models for FlowState."""

from .capture import (
    Asset,
    AssetType,
    BrowserTabMetadata,
    Capture,
    IDESession,
    OpenFile,
    normalize_metadata,
)
from .claude import ClaudeCodeContext, GitStatus
from .config import Settings
from .session import PowerShellVersion, RunningCommand, ShellType, TerminalSession

__all__ = [
    'Asset',
    'AssetType',
    'BrowserTabMetadata',
    'Capture',
    'ClaudeCodeContext',
    'GitStatus',
    'IDESession',
    'OpenFile',
    'PowerShellVersion',
    'RunningCommand',
    'Settings',
    'ShellType',
    'TerminalSession',
    'normalize_metadata',
]
