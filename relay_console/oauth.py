"""Acquisition of a new account through the external OAuth provider.

A flow can complete three ways: the user clicks "start" and the desktop
bridge reports back, the user says "I finished in my browser", or the
bridge delivers an ``oauth-callback-received`` event on its own. On the
network transport the user pastes the authorization code (or the whole
redirect URL) instead. Whichever path gets there first wins; the others
are ignored once the flow is exchanging or has succeeded.
"""
from __future__ import annotations

import asyncio
import logging
import re
import webbrowser
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs, urlsplit

from relay_console.bridge import OAUTH_CALLBACK_RECEIVED, OAUTH_URL_GENERATED
from relay_console.commands import Command
from relay_console.dispatcher import Dispatcher
from relay_console.errors import DispatchError, ValidationError
from relay_console.models import DialogTab, OAuthPhase, OAuthSession

logger = logging.getLogger(__name__)

ACTION_NAME = "OAuth"

_CODE_PARAM = re.compile(r"code=([^&\s]+)")
_CREDENTIAL_MISSING_MARKERS = ("Refresh Token", "refresh_token")
_ENVIRONMENT_MARKERS = ("environment", "desktop bridge")
_SIGNAL_BLOCKING_PHASES = (OAuthPhase.EXCHANGING, OAuthPhase.SUCCEEDED)


class OAuthFlowError(RuntimeError):
    pass


def extract_authorization_code(raw: str) -> str:
    """Return the ``code`` parameter of a pasted redirect URL, or the input itself."""
    code = raw.strip()
    if "?" not in code and "code=" not in code:
        return code

    candidate = code if code.startswith("http") else f"http://localhost/?{code.lstrip('?')}"
    try:
        values = parse_qs(urlsplit(candidate).query).get("code")
    except ValueError:
        values = None
    if values and values[0]:
        return values[0]

    match = _CODE_PARAM.search(code)
    if match:
        return match.group(1)
    return code


def classify_error(action: str, detail: str) -> str:
    if any(marker in detail for marker in _CREDENTIAL_MISSING_MARKERS):
        return detail
    lowered = detail.lower()
    if any(marker in lowered for marker in _ENVIRONMENT_MARKERS):
        return f"This action is not available in the current environment: {detail}"
    return f"{action} failed: {detail}"


class OAuthFlowController:
    def __init__(
        self,
        dispatcher: Dispatcher,
        refresh: Callable[[], Awaitable[Any]] | None = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ):
        self._dispatcher = dispatcher
        self._refresh = refresh
        self._open_browser = open_browser
        self._url_command = Command.PREPARE_OAUTH_URL if dispatcher.is_native else Command.GET_WEB_OAUTH_URL

        self.session: OAuthSession | None = None
        self.is_open = False
        self.active_tab = DialogTab.OAUTH

        self._loop: asyncio.AbstractEventLoop | None = None
        self._unlisteners: list[Callable[[], None]] = []
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Dialog lifecycle
    # ------------------------------------------------------------------

    async def open_dialog(self, tab: DialogTab = DialogTab.OAUTH) -> OAuthSession:
        if self.is_open:
            await self.close_dialog()

        self._loop = asyncio.get_running_loop()
        self.is_open = True
        self.active_tab = tab
        self.session = OAuthSession()
        self._unlisteners = [
            self._dispatcher.listen(OAUTH_CALLBACK_RECEIVED, self._on_callback_event),
            self._dispatcher.listen(OAUTH_URL_GENERATED, self._on_url_event),
        ]

        if tab is DialogTab.OAUTH:
            await self.prepare_url()
        return self.session

    async def close_dialog(self) -> None:
        session = self.session
        self.is_open = False
        self.session = None
        for unlisten in self._unlisteners:
            unlisten()
        self._unlisteners = []
        await self._cancel(session)

    async def select_tab(self, tab: DialogTab) -> None:
        if tab is self.active_tab:
            return
        previous = self.session if self.active_tab is DialogTab.OAUTH else None

        # Switch before releasing so a callback arriving meanwhile sees the new tab.
        self.active_tab = tab
        self.session = OAuthSession()
        await self._cancel(previous)
        if tab is DialogTab.OAUTH and self.is_open:
            await self.prepare_url()

    # ------------------------------------------------------------------
    # Flow steps
    # ------------------------------------------------------------------

    async def prepare_url(self) -> str | None:
        session = self._require_session()
        if session.authorization_url:
            return session.authorization_url

        try:
            url = await self._dispatcher.dispatch(self._url_command)
        except DispatchError as exc:
            logger.warning("Failed to prepare OAuth URL: %s", exc)
            session.last_error = str(exc)
            return None

        if isinstance(url, str) and url and self.session is session:
            session.authorization_url = url
            session.phase = OAuthPhase.URL_PREPARED
            session.last_error = None
        return session.authorization_url

    async def start(self) -> OAuthSession:
        session = self._require_session()
        self._refuse_reentry(session)

        if not session.authorization_url:
            await self.prepare_url()
        if not session.authorization_url:
            session.phase = OAuthPhase.FAILED
            session.last_error = classify_error(ACTION_NAME, session.last_error or "no authorization URL")
            session.message = session.last_error
            return session

        session.phase = OAuthPhase.AWAITING_COMPLETION
        session.message = f"{ACTION_NAME}..."
        if not self._dispatcher.is_native:
            self._open_browser(session.authorization_url)
            return session

        # The bridge opens the browser and resolves once the callback was exchanged.
        return await self._exchange(session, Command.START_OAUTH_LOGIN)

    async def finish(self, pasted: str | None = None) -> OAuthSession:
        """Complete the flow after the user came back from the browser.

        On the network API there is nothing to ask, so the pasted code (or
        the one pasted earlier) is exchanged instead.
        """
        session = self._require_session()
        self._refuse_reentry(session)
        if not self._dispatcher.is_native:
            return await self.submit_code(pasted if pasted is not None else session.pasted_code or "")
        return await self._exchange(session, Command.COMPLETE_OAUTH_LOGIN)

    async def submit_code(self, raw: str) -> OAuthSession:
        session = self._require_session()
        self._refuse_reentry(session)

        if not raw.strip():
            session.last_error = "Authorization code is required"
            session.message = session.last_error
            raise ValidationError(session.last_error)

        code = extract_authorization_code(raw)
        session.pasted_code = code
        return await self._exchange(session, Command.SUBMIT_WEB_OAUTH_CODE, {"code": code})

    async def handle_completion_signal(self) -> bool:
        """Finish the flow on the bridge's callback event, unless something else already did."""
        session = self.session
        if not self.is_open or session is None:
            return False
        if self.active_tab is not DialogTab.OAUTH:
            return False
        if session.phase in _SIGNAL_BLOCKING_PHASES:
            return False
        if not session.authorization_url:
            return False

        await self._exchange(session, Command.COMPLETE_OAUTH_LOGIN)
        return True

    async def cancel(self) -> None:
        await self._cancel(self.session)

    async def _cancel(self, session: OAuthSession | None) -> None:
        if session is None or not session.authorization_url:
            return
        if session.phase is OAuthPhase.SUCCEEDED:
            return

        session.authorization_url = None
        session.phase = OAuthPhase.CANCELLED
        session.message = ""
        try:
            await self._dispatcher.dispatch(Command.CANCEL_OAUTH_LOGIN)
        except DispatchError as exc:
            logger.warning("Failed to cancel OAuth flow: %s", exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _exchange(
        self,
        session: OAuthSession,
        command: Command,
        args: dict[str, Any] | None = None,
    ) -> OAuthSession:
        session.phase = OAuthPhase.EXCHANGING
        session.last_error = None
        session.message = f"{ACTION_NAME}..."

        try:
            result = await self._dispatcher.dispatch(command, args)
        except DispatchError as exc:
            if session.phase is OAuthPhase.CANCELLED:
                return session
            session.phase = OAuthPhase.FAILED
            session.last_error = classify_error(ACTION_NAME, str(exc))
            session.message = session.last_error
            return session

        if session.phase is OAuthPhase.CANCELLED:
            return session

        session.phase = OAuthPhase.SUCCEEDED
        if isinstance(result, dict) and result.get("email"):
            session.account_email = str(result["email"])

        await self._refresh_after_success()

        if session.account_email:
            session.message = f"Added {session.account_email}"
        else:
            session.message = f"{ACTION_NAME} succeeded"
        return session

    async def _refresh_after_success(self) -> None:
        if self._refresh is None:
            return
        try:
            await self._refresh()
        except DispatchError as exc:
            logger.warning("Refresh after OAuth success failed: %s", exc)

    def _require_session(self) -> OAuthSession:
        if self.session is None:
            raise OAuthFlowError("The add-account dialog is not open")
        return self.session

    @staticmethod
    def _refuse_reentry(session: OAuthSession) -> None:
        if session.phase is OAuthPhase.EXCHANGING:
            raise OAuthFlowError("An OAuth exchange is already in progress")
        if session.phase is OAuthPhase.SUCCEEDED:
            raise OAuthFlowError("This OAuth flow has already completed")

    def _on_callback_event(self, payload: Any) -> None:
        self._call_on_loop(self._schedule_completion)

    def _on_url_event(self, payload: Any) -> None:
        if isinstance(payload, str) and payload:
            self._call_on_loop(lambda: self._apply_generated_url(payload))

    def _call_on_loop(self, callback: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback)

    def _schedule_completion(self) -> None:
        task = asyncio.ensure_future(self.handle_completion_signal())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _apply_generated_url(self, url: str) -> None:
        session = self.session
        if session is None or self.active_tab is not DialogTab.OAUTH:
            return
        if session.phase in (OAuthPhase.IDLE, OAuthPhase.URL_PREPARED):
            session.authorization_url = url
            session.phase = OAuthPhase.URL_PREPARED
