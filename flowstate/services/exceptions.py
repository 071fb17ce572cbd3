"""Custom exceptions for capture and restore operations."""


class FlowStateError(Exception):
    """Base exception for all FlowState errors."""

    pass


class CaptureError(FlowStateError):
    """Exception raised when a single capture probe fails.

    Probes catch this at their own boundary and leave the field empty.
    """

    pass


class GitServiceError(FlowStateError):
    """Exception raised for Git service operations."""

    pass


class RestoreError(FlowStateError):
    """Base exception for restore-side failures."""

    pass


class MissingMetadataError(RestoreError):
    """Exception raised when an asset lacks the fields required to replay it."""

    pass


class LaunchError(RestoreError):
    """Exception raised when a resolved launch recipe fails to spawn."""

    pass


class RestorationCancelled(RestoreError):
    """Exception raised to unwind the remainder of a cancelled restoration run."""

    pass


class RemoteControlUnavailable(RestoreError):
    """Exception raised when a browser's debugging endpoint cannot be reached."""

    pass


class InvalidUrlError(RestoreError):
    """Exception raised for a URL that may not be opened."""

    pass


class AssetNotFoundError(RestoreError):
    """Exception raised when a capture or asset does not exist."""

    pass
