from __future__ import annotations

from typing import Any

from relay_console.commands import Command
from relay_console.dispatcher import Dispatcher


class MonitorApi:
    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher

    async def get_stats(self) -> dict[str, Any]:
        return await self._dispatcher.dispatch(Command.GET_PROXY_STATS)

    async def get_logs(self) -> list[dict[str, Any]]:
        logs = await self._dispatcher.dispatch(Command.GET_PROXY_LOGS)
        return list(logs or [])

    async def set_enabled(self, enabled: bool) -> Any:
        return await self._dispatcher.dispatch(Command.SET_PROXY_MONITOR_ENABLED, {"enabled": enabled})

    async def clear_logs(self) -> Any:
        return await self._dispatcher.dispatch(Command.CLEAR_PROXY_LOGS)
