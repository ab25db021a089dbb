from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Protocol

import requests

from relay_console.bridge import EventHandler, NativeBridge, installed_bridge
from relay_console.commands import COMMANDS, NETWORK_NOOP_COMMANDS, Command, resolve_command
from relay_console.config import AppSettings, ConfigurationError
from relay_console.errors import DispatchError, ErrorKind
from relay_console.http import HttpClient
from relay_console.models import Envelope

logger = logging.getLogger(__name__)


class Transport(Protocol):
    name: str
    is_native: bool

    async def call(self, command: Command | str, args: dict[str, Any]) -> Any:
        ...

    def listen(self, event: str, handler: EventHandler) -> Callable[[], None]:
        ...


class BridgeTransport:
    name = "bridge"
    is_native = True

    def __init__(self, bridge: NativeBridge):
        self._bridge = bridge

    async def call(self, command: Command | str, args: dict[str, Any]) -> Any:
        name = command.value if isinstance(command, Command) else command
        try:
            result = self._bridge.invoke(name, args)
            if inspect.isawaitable(result):
                result = await result
        except DispatchError:
            raise
        except Exception as exc:
            raise DispatchError(ErrorKind.BRIDGE, str(exc) or type(exc).__name__) from exc
        return result

    def listen(self, event: str, handler: EventHandler) -> Callable[[], None]:
        return self._bridge.listen(event, handler)


class NetworkTransport:
    name = "network"
    is_native = False

    def __init__(self, http_client: HttpClient):
        self._http_client = http_client

    async def call(self, command: Command | str, args: dict[str, Any]) -> Any:
        resolved = resolve_command(command)
        if resolved in NETWORK_NOOP_COMMANDS:
            return None

        spec = COMMANDS.get(resolved) if resolved is not None else None
        if spec is None:
            name = command.value if isinstance(command, Command) else command
            raise DispatchError(ErrorKind.UNSUPPORTED, f"Command '{name}' is not supported over the network API")

        path = spec.build_path(args)
        payload = None
        if spec.sends_body:
            payload = spec.body(args) if spec.body is not None else (args or None)

        response = await asyncio.to_thread(self._http_client.request, spec.method, path, payload)
        return self._unwrap(response, spec.unwrap)

    def listen(self, event: str, handler: EventHandler) -> Callable[[], None]:
        # The network API pushes no events.
        return lambda: None

    @staticmethod
    def _unwrap(response: requests.Response, unwrap: Callable[[Any], Any] | None) -> Any:
        if response.status_code == 401:
            raise DispatchError(ErrorKind.UNAUTHORIZED, "Unauthorized", status_code=401)

        text = response.text
        if not response.ok:
            raise DispatchError(
                ErrorKind.PROTOCOL,
                _error_message(text) or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not text:
            return None

        try:
            body = json.loads(text)
        except ValueError as exc:
            raise DispatchError(
                ErrorKind.PROTOCOL,
                f"Invalid JSON response: {text[:200]}",
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict):
            return body

        envelope = Envelope.from_json(body)
        if envelope.is_error:
            raise DispatchError(
                ErrorKind.PROTOCOL,
                envelope.message or "Request failed",
                status_code=response.status_code,
            )

        if unwrap is not None:
            unwrapped = unwrap(body)
            if unwrapped is not None:
                return unwrapped

        return envelope.data if envelope.has_data else body


def _error_message(text: str) -> str:
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, dict) and parsed.get("message"):
        return str(parsed["message"])
    return text


def select_transport(
    settings: AppSettings,
    http_client: HttpClient,
    bridge: NativeBridge | None = None,
) -> Transport:
    """Pick the transport for this run from the configured mode and the bridge probe."""
    bridge = bridge if bridge is not None else installed_bridge()

    if settings.transport_mode == "network":
        transport: Transport = NetworkTransport(http_client)
    elif settings.transport_mode == "bridge":
        if bridge is None:
            raise ConfigurationError("RELAY_TRANSPORT=bridge but no desktop bridge is installed")
        transport = BridgeTransport(bridge)
    elif bridge is not None:
        transport = BridgeTransport(bridge)
    else:
        transport = NetworkTransport(http_client)

    logger.info("Using %s transport", transport.name)
    return transport
