from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    BRIDGE = "bridge"
    UNSUPPORTED = "unsupported"
    UNAUTHORIZED = "unauthorized"
    PROTOCOL = "protocol"


class DispatchError(RuntimeError):
    """Normalized failure of a command, whichever transport carried it."""

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"DispatchError(kind={self.kind.value!r}, message={self.message!r})"


class ValidationError(ValueError):
    pass


class ImportFormatError(ValidationError):
    pass
