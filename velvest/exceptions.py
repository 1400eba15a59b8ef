"""
Velvest Exceptions

Error types raised across the analysis core and its collaborators.
"""


class VelvestError(Exception):
    """Base class for all Velvest errors."""


class LogEntryNotFound(VelvestError, IndexError):
    """Raised when a log position does not resolve to a retained entry."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"No log entry at index {index} (log holds {length} entries)")


class PipelineClosed(VelvestError):
    """Raised when work is submitted to a pipeline that is not running."""


class CaptureError(VelvestError):
    """Raised when a capture file cannot be opened or read."""
