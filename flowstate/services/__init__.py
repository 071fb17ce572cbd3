"""Service layer for process, git and browser debugging operations."""

from .devtools_client import DevToolsClient
from .exceptions import (
    AssetNotFoundError,
    CaptureError,
    FlowStateError,
    GitServiceError,
    InvalidUrlError,
    LaunchError,
    MissingMetadataError,
    RemoteControlUnavailable,
    RestorationCancelled,
    RestoreError,
)
from .git_service import GitService
from .process_service import ProcessInspector

__all__ = [
    "DevToolsClient",
    "GitService",
    "ProcessInspector",
    "FlowStateError",
    "CaptureError",
    "GitServiceError",
    "RestoreError",
    "MissingMetadataError",
    "LaunchError",
    "RestorationCancelled",
    "RemoteControlUnavailable",
    "InvalidUrlError",
    "AssetNotFoundError",
]
