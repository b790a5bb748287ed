"""Error taxonomy shared by the capture layer and the API client."""

from typing import Optional


class TroveError(Exception):
    """Base class for Trove errors."""


class ExtractionError(TroveError):
    """Turning a URL into an item failed (network, non-2xx, or success=false)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AssignmentError(TroveError):
    """A single collection assignment was rejected."""

    def __init__(self, message: str, *, collection_id: str):
        super().__init__(message)
        self.collection_id = collection_id


class SaveExecutionError(TroveError):
    """One or more collection assignments failed during a save.

    Assignments that succeeded are listed in ``succeeded`` and stay committed.
    """

    def __init__(self, message: str, *, failed: dict[str, str], succeeded: list[str]):
        super().__init__(message)
        self.failed = failed
        self.succeeded = succeeded
