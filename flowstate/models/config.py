"""Engine settings model."""

from typing import Optional

from pydantic import BaseModel, Field

from ..core.constants import ASSISTANT_WAIT_TIMEOUT, CDP_BATCH_SIZE, DEFAULT_OPENER_BATCH_SIZE


class Settings(BaseModel):
    """User-tunable engine settings, stored as YAML in the data directory."""
    smart_capture: bool = Field(
        default=False, description="Drop idle terminals during capture"
    )
    app_name: str = Field(
        default="flowstate", description="Process name used for self-capture detection"
    )
    restore_marker: str = Field(
        default="flowstate_restore",
        description="Substring identifying shells spawned by a restore",
    )
    assistant_wait_seconds: float = Field(
        default=ASSISTANT_WAIT_TIMEOUT, description="How long to wait for Claude Code after terminals"
    )
    browser_batch_size: int = Field(default=CDP_BATCH_SIZE, ge=1)
    default_browser_batch_size: int = Field(default=DEFAULT_OPENER_BATCH_SIZE, ge=1)
    temp_dir: Optional[str] = Field(
        default=None, description="Directory for generated scripts (system temp if unset)"
    )
