from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Envelope:
    status: str
    data: Any = None
    message: str | None = None
    has_data: bool = False

    @staticmethod
    def from_json(body: dict[str, Any]) -> "Envelope":
        message = body.get("message")
        return Envelope(
            status=str(body.get("status", "")),
            data=body.get("data"),
            message=str(message) if message is not None else None,
            has_data="data" in body,
        )

    @property
    def is_error(self) -> bool:
        return self.status == "error"


class GuardPhase(str, Enum):
    LOADING = "loading"
    SETUP_REQUIRED = "setup_required"
    LOGIN_REQUIRED = "login_required"
    AUTHENTICATED = "authenticated"
    ERRORED = "errored"


@dataclass(frozen=True)
class SessionState:
    loading: bool = True
    password_configured: bool = False
    authenticated: bool = False
    error: str | None = None


class DialogTab(str, Enum):
    OAUTH = "oauth"
    TOKEN = "token"
    IMPORT = "import"


class OAuthPhase(str, Enum):
    IDLE = "idle"
    URL_PREPARED = "url_prepared"
    AWAITING_COMPLETION = "awaiting_completion"
    EXCHANGING = "exchanging"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OAuthSession:
    phase: OAuthPhase = OAuthPhase.IDLE
    authorization_url: str | None = None
    pasted_code: str | None = None
    last_error: str | None = None
    message: str = ""
    account_email: str | None = None


class ImportOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class BatchImportResult:
    total: int = 0
    succeeded: int = 0
    failed: int = 0

    def record(self, ok: bool) -> None:
        self.total += 1
        if ok:
            self.succeeded += 1
        else:
            self.failed += 1

    @property
    def outcome(self) -> ImportOutcome:
        if self.succeeded and not self.failed:
            return ImportOutcome.SUCCESS
        if self.succeeded > 0:
            return ImportOutcome.PARTIAL
        return ImportOutcome.FAILURE

    @property
    def summary(self) -> str:
        if self.outcome is ImportOutcome.SUCCESS:
            return f"Imported {self.succeeded} account(s)"
        if self.outcome is ImportOutcome.PARTIAL:
            return f"Imported {self.succeeded} account(s), {self.failed} failed"
        return "Import failed: no account could be added"
