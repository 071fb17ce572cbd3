"""Claude Code assistant context models."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GitStatus(BaseModel):
    """Branch and working-tree state of a repository."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    branch: str = ""
    modified_files: List[str] = Field(default_factory=list)
    untracked_files: List[str] = Field(default_factory=list)


class ClaudeCodeContext(BaseModel):
    """State of a Claude Code process detected inside a terminal session."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_running: bool = Field(default=False, alias="isClaudeCodeRunning")
    working_directory: str = ""
    project_files: List[str] = Field(default_factory=list)
    recently_modified_files: List[str] = Field(default_factory=list)
    git_status: Optional[GitStatus] = None
    session_start_time: Optional[str] = None
    context_hint: str = ""
    startup_command: str = "claude"
    command_history_before_start: List[str] = Field(default_factory=list)
