"""Terminal session models captured from running shells."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .claude import ClaudeCodeContext


class ShellType(str, Enum):
    """Shell dialects the engine can classify."""
    POWERSHELL = "PowerShell"  # older captures; variant in power_shell_version
    POWERSHELL_CLASSIC = "PowerShellClassic"
    POWERSHELL_CORE = "PowerShellCore"
    CMD = "CMD"
    GIT_BASH = "GitBash"
    WSL = "WSL"
    WINDOWS_TERMINAL_HOST = "WindowsTerminalHost"
    BASH = "Bash"
    ZSH = "Zsh"
    UNKNOWN = "Unknown"

    @property
    def is_powershell(self) -> bool:
        return self in (
            ShellType.POWERSHELL, ShellType.POWERSHELL_CLASSIC, ShellType.POWERSHELL_CORE
        )

    @property
    def is_windows(self) -> bool:
        return self.is_powershell or self in (
            ShellType.CMD,
            ShellType.GIT_BASH,
            ShellType.WSL,
        )


class PowerShellVersion(str, Enum):
    """PowerShell variant (Windows PowerShell 5.x vs PowerShell 7+)."""
    CLASSIC = "Classic"
    CORE = "Core"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunningCommand(CamelModel):
    """A child process found under a shell."""
    process_id: int
    process_name: str
    command_line: str = ""
    working_directory: Optional[str] = None
    execution_time_ms: int = 0


class TerminalSession(CamelModel):
    """A captured shell session.

    Only sessions carrying their shell type (and, where applicable, the
    hosting flag and PowerShell variant) can be replayed; everything else
    is display-only.
    """
    process_id: int
    process_name: str = ""
    shell_type: Optional[ShellType] = None
    current_directory: Optional[str] = None
    command_history: List[str] = Field(default_factory=list)
    running_processes: List[str] = Field(default_factory=list)
    running_commands: List[RunningCommand] = Field(default_factory=list)
    last_executed_command: Optional[str] = None
    window_title: Optional[str] = None
    window_handle: int = 0
    parent_process_id: Optional[int] = None
    parent_name: Optional[str] = None
    parent_command_line: Optional[str] = None
    is_hosted_in_windows_terminal: Optional[bool] = Field(
        default=None, alias="isWindowsTerminal"
    )
    power_shell_version: Optional[PowerShellVersion] = None
    own_command_line: Optional[str] = None
    environment_variables: Dict[str, str] = Field(default_factory=dict)
    claude_context: Optional[ClaudeCodeContext] = Field(
        default=None, alias="claudeCodeContext"
    )
    terminal_output: Optional[str] = None
    corrupted: bool = False
    capture_note: Optional[str] = Field(default=None, alias="note")

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> 'TerminalSession':
        """Build a session from stored terminal asset metadata.

        Metadata flagged as corrupted yields an empty session marked
        ``corrupted`` so the launcher can report it.
        """
        if metadata.get("corrupted"):
            return cls(process_id=0, corrupted=True)
        data = dict(metadata)
        data.setdefault("processId", 0)
        return cls.model_validate(data)

    @property
    def has_claude(self) -> bool:
        return bool(self.claude_context and self.claude_context.is_running)

    def missing_restore_fields(self) -> List[str]:
        """Return the names of fields required for replay that are absent."""
        if self.shell_type is None:
            return ["shellType"]
        missing = []
        if self.shell_type.is_windows and self.is_hosted_in_windows_terminal is None:
            missing.append("isWindowsTerminal")
        if self.shell_type.is_powershell and self.power_shell_version is None:
            missing.append("powerShellVersion")
        return missing

    def is_restorable(self) -> bool:
        if self.shell_type in (None, ShellType.UNKNOWN, ShellType.WINDOWS_TERMINAL_HOST):
            return False
        return not self.missing_restore_fields()
