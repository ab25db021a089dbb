from __future__ import annotations

from enum import Enum

from relay_console.models import GuardPhase, SessionState


class ShellView(str, Enum):
    PLACEHOLDER = "placeholder"
    LOGIN = "login"
    PROTECTED = "protected"


def choose_view(state: SessionState) -> ShellView:
    # A cached authenticated flag is not trusted while a check is in flight.
    if state.loading:
        return ShellView.PLACEHOLDER
    if not state.authenticated:
        return ShellView.LOGIN
    return ShellView.PROTECTED


class LoginForm(str, Enum):
    SETUP = "setup"
    LOGIN = "login"
    RETRY = "retry"


def choose_login_form(phase: GuardPhase) -> LoginForm:
    # A failed status check cannot tell setup from login, so only offer a retry.
    if phase is GuardPhase.ERRORED:
        return LoginForm.RETRY
    if phase is GuardPhase.SETUP_REQUIRED:
        return LoginForm.SETUP
    return LoginForm.LOGIN
