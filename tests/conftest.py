from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import urlsplit

import pytest
import requests

from relay_console.bridge import InProcessBridge, install_bridge
from relay_console.config import AppSettings
from relay_console.dispatcher import Dispatcher
from relay_console.http import HttpClient
from relay_console.transport import BridgeTransport, NetworkTransport

BASE_URL = "http://backend.test"


def make_settings(**overrides: Any) -> AppSettings:
    values: dict[str, Any] = {
        "base_url": BASE_URL,
        "transport_mode": "network",
        "login_path": "/login",
        "timeout_seconds": 5,
        "session_cookie_name": "ag_session",
        "session_cache_path": "",
        "import_delay_seconds": 0.0,
        "min_password_length": 6,
        "ready_timeout_seconds": 1.0,
    }
    values.update(overrides)
    return AppSettings(**values)


def make_response(status_code: int = 200, body: Any = None, text: str | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if text is None:
        text = "" if body is None else json.dumps(body)
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    return response


def success(data: Any = None) -> dict[str, Any]:
    return {"status": "success", "data": data}


class FakeSession:
    """Stands in for requests.Session; routes are keyed by (method, path)."""

    def __init__(self):
        self.headers: dict[str, str] = {}
        self.cookies = requests.cookies.RequestsCookieJar()
        self.calls: list[tuple[str, str, Any]] = []
        self._routes: dict[tuple[str, str], Any] = {}

    def route(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Any = None,
        text: str | None = None,
        raises: Exception | None = None,
        set_cookie: str | None = None,
    ) -> None:
        self._routes[(method, path)] = (raises, make_response(status, body, text), set_cookie)

    def paths(self) -> list[tuple[str, str]]:
        return [(method, path) for method, path, _ in self.calls]

    def request(self, method: str, url: str, json: Any = None, timeout: Any = None) -> requests.Response:
        path = urlsplit(url).path
        self.calls.append((method, path, json))
        entry = self._routes.get((method, path))
        if entry is None:
            return make_response(404, {"status": "error", "message": f"no route for {method} {path}"})
        raises, response, set_cookie = entry
        if raises is not None:
            raise raises
        if set_cookie:
            self.cookies.set("ag_session", set_cookie)
        return response


class RedirectRecorder:
    def __init__(self):
        self.paths: list[str] = []

    def __call__(self, path: str) -> None:
        self.paths.append(path)


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def no_installed_bridge():
    install_bridge(None)
    yield
    install_bridge(None)


@pytest.fixture()
def settings() -> AppSettings:
    return make_settings()


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def http_client(settings: AppSettings, fake_session: FakeSession) -> HttpClient:
    return HttpClient(settings, session=fake_session)


@pytest.fixture()
def redirects() -> RedirectRecorder:
    return RedirectRecorder()


@pytest.fixture()
def network_dispatcher(http_client: HttpClient, redirects: RedirectRecorder) -> Dispatcher:
    return Dispatcher(NetworkTransport(http_client), login_path="/login", redirect=redirects)


@pytest.fixture()
def bridge() -> InProcessBridge:
    return InProcessBridge()


@pytest.fixture()
def bridge_dispatcher(bridge: InProcessBridge) -> Dispatcher:
    return Dispatcher(BridgeTransport(bridge))
