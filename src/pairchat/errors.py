"""
pairchat error types.

Every error's blast radius is a single message: send failures roll back
their own provisional entry, read-mark failures are logged and dropped.
"""

from typing import Any, Optional


class PairChatError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class WriteFailure(PairChatError):
    """Remote insert/update was rejected."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("write_failure", message, details)


class UploadFailure(PairChatError):
    """Blob store rejected the upload or returned no public URL."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("upload_failure", message, details)


class ReadMarkFailure(PairChatError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("read_mark_failure", message, details)


class ConnectionError(PairChatError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)
