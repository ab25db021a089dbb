"""Native bridge used when the console is hosted inside a desktop shell.

The host installs a bridge once at start-up with :func:`install_bridge`;
whether one is installed is the environment probe that selects the
transport for the rest of the run.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]
CommandHandler = Callable[[Dict[str, Any]], Any]

OAUTH_URL_GENERATED = "oauth-url-generated"
OAUTH_CALLBACK_RECEIVED = "oauth-callback-received"


class BridgeError(RuntimeError):
    """Raised by a bridge when a command cannot be carried out."""


class NativeBridge(Protocol):
    def invoke(self, command: str, args: Dict[str, Any]) -> Any:
        ...

    def listen(self, event: str, handler: EventHandler) -> Callable[[], None]:
        ...


@dataclass
class InProcessBridge:
    """Bridge whose commands are Python callables registered by the host.

    Handlers may be plain functions or coroutine functions. Events can be
    emitted from any thread; listeners are called on the emitting thread.
    """

    handlers: Dict[str, CommandHandler] = field(default_factory=dict)
    _listeners: Dict[str, List[EventHandler]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def register(self, command: str, handler: CommandHandler) -> None:
        self.handlers[command] = handler

    def invoke(self, command: str, args: Dict[str, Any]) -> Any:
        handler = self.handlers.get(command)
        if handler is None:
            raise BridgeError(f"Command '{command}' is not registered with the desktop bridge")
        return handler(args)

    def listen(self, event: str, handler: EventHandler) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(event, []).append(handler)

        def unlisten() -> None:
            with self._lock:
                listeners = self._listeners.get(event, [])
                if handler in listeners:
                    listeners.remove(handler)

        return unlisten

    def emit(self, event: str, payload: Any = None) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            listener(payload)


_installed_bridge: NativeBridge | None = None


def install_bridge(bridge: NativeBridge | None) -> None:
    global _installed_bridge
    _installed_bridge = bridge
    if bridge is not None:
        logger.info("Desktop bridge installed: %s", type(bridge).__name__)


def installed_bridge() -> NativeBridge | None:
    return _installed_bridge
