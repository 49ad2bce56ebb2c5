"""
Custom exception hierarchy for the media indexer.

Failures are contained to the smallest scope that can absorb them
(file, then subtree, then run); these types tell the reconciler which
scope it is dealing with.
"""


class MediaIndexerError(Exception):
    """Base exception for all media indexer errors."""
    pass


class RootPathInaccessible(MediaIndexerError):
    """Raised when a library root or a classified subtree root cannot be opened."""

    def __init__(self, path, reason=None):
        self.path = path
        self.reason = reason
        message = f"Unable to access {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class FileReadError(MediaIndexerError):
    """Raised when a single file cannot be read during a scan."""

    def __init__(self, path, reason=None):
        self.path = path
        self.reason = reason
        message = f"Unable to read {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class HashComputationError(FileReadError):
    """Raised when the content hash of a file cannot be computed."""
    pass


class CatalogWriteError(MediaIndexerError):
    """Raised when persisting a catalog row fails."""
    pass


class ScanAlreadyInProgress(MediaIndexerError):
    """Raised when a scan is requested while another one is running."""
    pass


class SettingsError(MediaIndexerError):
    """Raised when a stored setting cannot be parsed or serialized."""
    pass
