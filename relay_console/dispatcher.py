from __future__ import annotations

import logging
from typing import Any, Callable

from relay_console.bridge import EventHandler
from relay_console.commands import Command
from relay_console.errors import DispatchError, ErrorKind
from relay_console.transport import Transport

logger = logging.getLogger(__name__)


class Dispatcher:
    """Transport-agnostic entry point for every backend command.

    ``redirect`` is called with the login path whenever the backend answers
    401; the error is raised only after the redirect has happened.
    """

    def __init__(
        self,
        transport: Transport,
        login_path: str = "/login",
        redirect: Callable[[str], None] | None = None,
    ):
        self._transport = transport
        self._login_path = login_path
        self._redirect = redirect

    @property
    def transport_name(self) -> str:
        return self._transport.name

    @property
    def is_native(self) -> bool:
        return self._transport.is_native

    def set_redirect(self, redirect: Callable[[str], None] | None) -> None:
        self._redirect = redirect

    async def dispatch(self, command: Command | str, args: dict[str, Any] | None = None) -> Any:
        name = command.value if isinstance(command, Command) else command
        try:
            return await self._transport.call(command, dict(args or {}))
        except DispatchError as exc:
            if exc.kind is ErrorKind.UNAUTHORIZED:
                logger.info("Command %s was rejected as unauthorized, redirecting to %s", name, self._login_path)
                if self._redirect is not None:
                    self._redirect(self._login_path)
            else:
                logger.warning("Command %s failed: %s", name, exc)
            raise

    def listen(self, event: str, handler: EventHandler) -> Callable[[], None]:
        return self._transport.listen(event, handler)
