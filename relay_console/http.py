from __future__ import annotations

from typing import Any

import requests

from relay_console.config import AppSettings
from relay_console.errors import DispatchError, ErrorKind
from relay_console.session_store import SessionCookieStore


class HttpClient:
    def __init__(
        self,
        settings: AppSettings,
        session: requests.Session | None = None,
        cookie_store: SessionCookieStore | None = None,
    ):
        self._settings = settings
        self._session = session if session is not None else requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        self._cookie_store = cookie_store
        self._restore_session_cookie()

    def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
    ) -> requests.Response:
        url = f"{self._settings.base_url}{path}"
        kwargs: dict[str, Any] = {"timeout": self._settings.timeout_seconds}
        if payload is not None:
            kwargs["json"] = payload

        try:
            return self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise DispatchError(ErrorKind.TRANSPORT, f"{method} {path} failed: {exc}") from exc

    def get(self, path: str) -> requests.Response:
        return self.request("GET", path)

    def post(self, path: str, payload: Any = None) -> requests.Response:
        return self.request("POST", path, payload)

    def persist_session_cookie(self) -> None:
        if self._cookie_store is None:
            return
        value = self._session.cookies.get(self._settings.session_cookie_name)
        if value:
            self._cookie_store.save(value)

    def forget_session_cookie(self) -> None:
        self._session.cookies.pop(self._settings.session_cookie_name, None)
        if self._cookie_store is not None:
            self._cookie_store.clear()

    def _restore_session_cookie(self) -> None:
        if self._cookie_store is None:
            return
        value = self._cookie_store.load()
        if value:
            self._session.cookies.set(self._settings.session_cookie_name, value)


def read_json(response: requests.Response) -> Any:
    """Parse a response body, returning None for an empty or non-JSON body."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
