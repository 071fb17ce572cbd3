"""Capture and asset models."""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AssetType(str, Enum):
    """Kinds of assets a capture can hold."""
    CODE = "code"
    TERMINAL = "terminal"
    BROWSER = "browser"
    NOTES = "notes"
    OTHER = "other"


class Capture(BaseModel):
    """A named checkpoint of the workspace."""
    id: str
    name: str
    created_at: str
    session_id: Optional[str] = None
    context_summary: Optional[str] = None


class Asset(BaseModel):
    """A single captured item. Immutable once stored."""
    model_config = ConfigDict(frozen=True)

    id: str
    capture_id: str
    asset_type: AssetType
    title: str
    path: Optional[str] = None
    content: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict) -> 'Asset':
        """Create an asset from a stored record, normalizing its metadata."""
        data = dict(record)
        data['metadata'] = normalize_metadata(data.get('metadata'))
        return cls(**data)


def normalize_metadata(raw: Any) -> Dict[str, Any]:
    """Coerce stored metadata into a dict.

    Metadata may arrive as a dict, a JSON string, or a JSON string that was
    encoded twice. Anything unparseable is kept as a corrupted marker so the
    restore path can report it instead of guessing.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw

    value = raw
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return {'corrupted': True, 'raw': str(raw)[:500]}

    if isinstance(value, dict):
        return value
    return {'corrupted': True, 'raw': str(raw)[:500]}


class BrowserTabMetadata(BaseModel):
    """Metadata stored for one captured browser tab."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: Optional[str] = None
    browser_name: str = "Default"
    browser_path: Optional[str] = None
    debugging_port: Optional[int] = None
    debugging_enabled: Optional[bool] = None


class CursorPosition(BaseModel):
    line: int
    column: int = 0


class OpenFile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    path: str
    cursor_position: Optional[CursorPosition] = None
    is_active: bool = False


class IDESession(BaseModel):
    """Editor session stored as metadata on code assets."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ide_name: str = "Unknown"
    process_id: Optional[int] = None
    workspace_paths: List[str] = Field(default_factory=list)
    open_files: List[OpenFile] = Field(default_factory=list)
