from __future__ import annotations

from typing import Any

from relay_console.commands import Command
from relay_console.dispatcher import Dispatcher
from relay_console.errors import ValidationError


class AccountsApi:
    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher

    async def list_accounts(self) -> list[dict[str, Any]]:
        accounts = await self._dispatcher.dispatch(Command.LIST_ACCOUNTS)
        return list(accounts or [])

    async def get_current_account(self) -> dict[str, Any] | None:
        return await self._dispatcher.dispatch(Command.GET_CURRENT_ACCOUNT)

    async def add_account(self, refresh_token: str, email: str = "") -> Any:
        refresh_token = refresh_token.strip()
        if not refresh_token:
            raise ValidationError("Refresh token is required")
        return await self._dispatcher.dispatch(
            Command.ADD_ACCOUNT,
            {"refreshToken": refresh_token, "email": email},
        )

    async def delete_account(self, account_id: str) -> Any:
        return await self._dispatcher.dispatch(Command.DELETE_ACCOUNT, {"accountId": account_id})

    async def delete_accounts(self, account_ids: list[str]) -> Any:
        return await self._dispatcher.dispatch(Command.DELETE_ACCOUNTS, {"accountIds": list(account_ids)})

    async def switch_account(self, account_id: str) -> Any:
        return await self._dispatcher.dispatch(Command.SWITCH_ACCOUNT, {"accountId": account_id})

    async def reorder_accounts(self, account_ids: list[str]) -> Any:
        return await self._dispatcher.dispatch(Command.REORDER_ACCOUNTS, {"accountIds": list(account_ids)})

    async def toggle_proxy_status(self, account_id: str, enable: bool, reason: str | None = None) -> Any:
        return await self._dispatcher.dispatch(
            Command.TOGGLE_PROXY_STATUS,
            {"accountId": account_id, "enable": enable, "reason": reason},
        )

    async def fetch_account_quota(self, account_id: str) -> Any:
        return await self._dispatcher.dispatch(Command.FETCH_ACCOUNT_QUOTA, {"accountId": account_id})

    async def refresh_all_quotas(self) -> dict[str, Any]:
        summary = await self._dispatcher.dispatch(Command.REFRESH_ALL_QUOTAS)
        return summary if isinstance(summary, dict) else {}

    async def import_from_db(self, path: str | None = None) -> Any:
        if path:
            return await self._dispatcher.dispatch(Command.IMPORT_FROM_CUSTOM_DB, {"path": path})
        return await self._dispatcher.dispatch(Command.IMPORT_FROM_DB)

    async def import_v1_accounts(self) -> Any:
        return await self._dispatcher.dispatch(Command.IMPORT_V1_ACCOUNTS)
