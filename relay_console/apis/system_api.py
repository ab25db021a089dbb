from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from relay_console.commands import Command
from relay_console.dispatcher import Dispatcher
from relay_console.errors import DispatchError

logger = logging.getLogger(__name__)


class SystemApi:
    def __init__(self, dispatcher: Dispatcher, poll_interval_seconds: float = 0.05):
        self._dispatcher = dispatcher
        self._poll_interval_seconds = poll_interval_seconds

    async def health(self) -> bool:
        body = await self._dispatcher.dispatch(Command.HEALTH_CHECK)
        return isinstance(body, dict) and body.get("status") == "ok"

    async def wait_until_ready(self, timeout_seconds: float) -> bool:
        """Poll the health endpoint until it reports ok or the budget runs out."""
        deadline = time.monotonic() + timeout_seconds
        while True:
            try:
                if await self.health():
                    return True
            except DispatchError as exc:
                logger.debug("Backend not ready yet: %s", exc)

            if time.monotonic() + self._poll_interval_seconds > deadline:
                return False
            await asyncio.sleep(self._poll_interval_seconds)

    async def show_main_window(self) -> None:
        await self._dispatcher.dispatch(Command.SHOW_MAIN_WINDOW)

    async def open_data_folder(self) -> None:
        await self._dispatcher.dispatch(Command.OPEN_DATA_FOLDER)

    async def get_app_path(self) -> Any:
        return await self._dispatcher.dispatch(Command.GET_APP_PATH)
