from __future__ import annotations

from typing import Any

from relay_console.commands import Command
from relay_console.dispatcher import Dispatcher
from relay_console.errors import ValidationError


class ProxyApi:
    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher

    async def load_config(self) -> dict[str, Any]:
        return await self._dispatcher.dispatch(Command.LOAD_CONFIG)

    async def save_config(self, config: dict[str, Any]) -> Any:
        return await self._dispatcher.dispatch(Command.SAVE_CONFIG, {"config": config})

    async def get_status(self) -> dict[str, Any]:
        status = await self._dispatcher.dispatch(Command.GET_PROXY_STATUS)
        return status if isinstance(status, dict) else {"running": False}

    async def start(self) -> Any:
        return await self._dispatcher.dispatch(Command.START_PROXY_SERVICE)

    async def stop(self) -> Any:
        return await self._dispatcher.dispatch(Command.STOP_PROXY_SERVICE)

    async def update_model_mapping(self, mapping: dict[str, str]) -> Any:
        return await self._dispatcher.dispatch(Command.UPDATE_MODEL_MAPPING, {"mapping": mapping})

    async def fetch_upstream_models(self, **options: Any) -> Any:
        # Tolerated to fail with HTTP 500; callers decide whether to retry.
        return await self._dispatcher.dispatch(Command.FETCH_UPSTREAM_MODELS, options)

    async def clear_session_bindings(self) -> Any:
        return await self._dispatcher.dispatch(Command.CLEAR_PROXY_SESSION_BINDINGS)

    async def generate_api_key(self) -> str:
        key = await self._dispatcher.dispatch(Command.GENERATE_API_KEY)
        if not isinstance(key, str) or not key:
            raise ValidationError("Backend returned an empty API key")
        return key
