from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable

from relay_console.commands import COMMANDS, Command
from relay_console.config import AppSettings
from relay_console.errors import DispatchError, ValidationError
from relay_console.http import HttpClient, read_json
from relay_console.models import GuardPhase, SessionState

logger = logging.getLogger(__name__)

StateListener = Callable[[GuardPhase, SessionState], None]


class AuthenticationError(RuntimeError):
    pass


class SessionGuard:
    """Login state machine gating the protected console.

    Only the network transport has a session; under the desktop bridge the
    guard reports Authenticated as soon as it is mounted.
    """

    def __init__(self, settings: AppSettings, http_client: HttpClient, is_native: bool):
        self._settings = settings
        self._http_client = http_client
        self._is_native = is_native
        self._phase = GuardPhase.LOADING
        self._state = SessionState()
        self._listeners: list[StateListener] = []
        self.last_redirect: str | None = None

    @property
    def phase(self) -> GuardPhase:
        return self._phase

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def mount(self) -> GuardPhase:
        return await self.check_status()

    async def check_status(self) -> GuardPhase:
        if self._is_native:
            self._set(GuardPhase.AUTHENTICATED, password_configured=True, authenticated=True)
            return self._phase

        self._set(GuardPhase.LOADING, loading=True, keep_flags=True)
        try:
            response = await asyncio.to_thread(self._http_client.get, _path(Command.AUTH_STATUS))
            if not response.ok:
                raise AuthenticationError("Failed to check auth status")
            body = read_json(response)
            data = body.get("data") if isinstance(body, dict) else None
            data = data if isinstance(data, dict) else {}
        except (AuthenticationError, DispatchError) as exc:
            logger.warning("Auth status probe failed: %s", exc)
            self._set(GuardPhase.ERRORED, error=str(exc), keep_flags=True)
            return self._phase

        password_configured = bool(data.get("password_set", False))
        logged_in = bool(data.get("logged_in", False))
        if not password_configured:
            phase = GuardPhase.SETUP_REQUIRED
        elif not logged_in:
            phase = GuardPhase.LOGIN_REQUIRED
        else:
            phase = GuardPhase.AUTHENTICATED
        self._set(phase, password_configured=password_configured, authenticated=logged_in)
        return self._phase

    async def setup(self, password: str, confirmation: str | None = None) -> bool:
        self._require(GuardPhase.SETUP_REQUIRED, "setup")
        if len(password) < self._settings.min_password_length:
            raise ValidationError(
                f"Password must be at least {self._settings.min_password_length} characters"
            )
        if confirmation is not None and confirmation != password:
            raise ValidationError("Passwords do not match")

        return await self._submit_password(Command.AUTH_SETUP, password, "Setup failed")

    async def login(self, password: str) -> bool:
        self._require(GuardPhase.LOGIN_REQUIRED, "login")
        if not password:
            raise ValidationError("Password is required")

        return await self._submit_password(Command.AUTH_LOGIN, password, "Login failed")

    async def logout(self) -> None:
        self._require(GuardPhase.AUTHENTICATED, "logout")
        if self._is_native:
            return

        try:
            await asyncio.to_thread(self._http_client.post, _path(Command.AUTH_LOGOUT))
        except DispatchError as exc:
            logger.warning("Logout request failed: %s", exc)
        self._http_client.forget_session_cookie()
        self._set(GuardPhase.LOGIN_REQUIRED, password_configured=True)

    def redirect_to_login(self, login_path: str) -> None:
        """Drop the session after the backend rejected it."""
        self.last_redirect = login_path
        if self._is_native:
            return
        self._http_client.forget_session_cookie()
        self._set(GuardPhase.LOGIN_REQUIRED, password_configured=True)

    async def _submit_password(self, command: Command, password: str, fallback_error: str) -> bool:
        phase = self._phase
        self._set(phase, loading=True, keep_flags=True)
        try:
            response = await asyncio.to_thread(
                self._http_client.post, _path(command), {"password": password}
            )
        except DispatchError as exc:
            self._set(phase, error=str(exc), keep_flags=True)
            return False

        if not response.ok:
            body: Any = read_json(response)
            message = body.get("message") if isinstance(body, dict) else None
            self._set(phase, error=str(message or fallback_error), keep_flags=True)
            return False

        self._http_client.persist_session_cookie()
        self._set(GuardPhase.AUTHENTICATED, password_configured=True, authenticated=True)
        return True

    def _require(self, expected: GuardPhase, operation: str) -> None:
        if self._phase is not expected:
            raise AuthenticationError(f"Cannot {operation} while {self._phase.value}")
        if self._state.loading:
            raise AuthenticationError(f"Cannot {operation} while a request is in progress")

    def _set(
        self,
        phase: GuardPhase,
        loading: bool = False,
        error: str | None = None,
        password_configured: bool = False,
        authenticated: bool = False,
        keep_flags: bool = False,
    ) -> None:
        if keep_flags:
            state = replace(self._state, loading=loading, error=error)
        else:
            state = SessionState(
                loading=loading,
                password_configured=password_configured,
                authenticated=authenticated,
                error=error,
            )
        self._phase = phase
        self._state = state
        for listener in list(self._listeners):
            listener(phase, state)


def _path(command: Command) -> str:
    return COMMANDS[command].build_path({})
