"""Domain errors for syno-docker-update."""

from typing import Optional


class UpdaterError(RuntimeError):
    """Raised when the update workflow cannot continue safely."""

    def __init__(self, message: str, code: Optional[str] = None, show_usage: bool = False):
        super().__init__(message)
        self.code = code
        self.show_usage = show_usage
