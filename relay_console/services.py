from __future__ import annotations

import logging
from typing import Any, Callable

import requests

from relay_console.apis import AccountsApi, MonitorApi, ProxyApi, SystemApi
from relay_console.auth import SessionGuard
from relay_console.bridge import NativeBridge
from relay_console.config import AppSettings
from relay_console.dispatcher import Dispatcher
from relay_console.errors import DispatchError
from relay_console.http import HttpClient
from relay_console.importer import BatchImporter
from relay_console.oauth import OAuthFlowController
from relay_console.session_store import SessionCookieStore
from relay_console.transport import select_transport

logger = logging.getLogger(__name__)


class ConsoleService:
    def __init__(
        self,
        settings: AppSettings,
        dispatcher: Dispatcher,
        guard: SessionGuard,
        accounts_api: AccountsApi,
        proxy_api: ProxyApi,
        monitor_api: MonitorApi,
        system_api: SystemApi,
    ):
        self._settings = settings
        self._dispatcher = dispatcher
        self._guard = guard
        self._accounts_api = accounts_api
        self._proxy_api = proxy_api
        self._monitor_api = monitor_api
        self._system_api = system_api

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def guard(self) -> SessionGuard:
        return self._guard

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def accounts(self) -> AccountsApi:
        return self._accounts_api

    @property
    def proxy(self) -> ProxyApi:
        return self._proxy_api

    @property
    def monitor(self) -> MonitorApi:
        return self._monitor_api

    @property
    def system(self) -> SystemApi:
        return self._system_api

    def new_oauth_flow(self, open_browser: Callable[[str], Any] | None = None) -> OAuthFlowController:
        kwargs: dict[str, Any] = {"refresh": self.refresh_accounts_and_quotas}
        if open_browser is not None:
            kwargs["open_browser"] = open_browser
        return OAuthFlowController(self._dispatcher, **kwargs)

    def new_importer(self) -> BatchImporter:
        return BatchImporter(
            add_credential=self._accounts_api.add_account,
            delay_seconds=self._settings.import_delay_seconds,
            refresh=self.refresh_accounts_and_quotas,
        )

    async def refresh_accounts_and_quotas(self) -> list[dict[str, Any]]:
        accounts = await self._accounts_api.list_accounts()
        await self._accounts_api.refresh_all_quotas()
        return accounts

    async def initialize_data(self) -> dict[str, Any]:
        """Load what the protected views need right after authentication."""
        loaded: dict[str, Any] = {"config": None, "current_account": None, "accounts": []}
        try:
            loaded["config"] = await self._proxy_api.load_config()
            loaded["current_account"] = await self._accounts_api.get_current_account()
            loaded["accounts"] = await self._accounts_api.list_accounts()
        except DispatchError as exc:
            logger.error("Data initialization failed: %s", exc)
        return loaded


def build_service(
    settings: AppSettings | None = None,
    bridge: NativeBridge | None = None,
    session: requests.Session | None = None,
) -> ConsoleService:
    settings = settings or AppSettings.from_env()
    http_client = HttpClient(
        settings,
        session=session,
        cookie_store=SessionCookieStore(settings.session_cache_path),
    )
    transport = select_transport(settings, http_client, bridge)
    dispatcher = Dispatcher(transport, login_path=settings.login_path)
    guard = SessionGuard(settings, http_client, is_native=transport.is_native)
    dispatcher.set_redirect(guard.redirect_to_login)

    return ConsoleService(
        settings=settings,
        dispatcher=dispatcher,
        guard=guard,
        accounts_api=AccountsApi(dispatcher),
        proxy_api=ProxyApi(dispatcher),
        monitor_api=MonitorApi(dispatcher),
        system_api=SystemApi(dispatcher),
    )
