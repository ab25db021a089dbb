from __future__ import annotations

import pytest

from relay_console.apis import SystemApi


class TestHealth:
    @pytest.mark.asyncio
    async def test_ready_backend(self, network_dispatcher, fake_session) -> None:
        fake_session.route("GET", "/healthz", body={"status": "ok"})
        system = SystemApi(network_dispatcher, poll_interval_seconds=0.01)

        assert await system.health() is True
        assert await system.wait_until_ready(0.2) is True
        assert fake_session.paths() == [("GET", "/healthz"), ("GET", "/healthz")]

    @pytest.mark.asyncio
    async def test_unreachable_backend_times_out(self, network_dispatcher, fake_session) -> None:
        system = SystemApi(network_dispatcher, poll_interval_seconds=0.01)

        assert await system.wait_until_ready(0.05) is False
        assert len(fake_session.calls) >= 2

    @pytest.mark.asyncio
    async def test_window_commands_are_noops_over_the_network(self, network_dispatcher, fake_session) -> None:
        system = SystemApi(network_dispatcher)

        await system.show_main_window()
        await system.open_data_folder()

        assert fake_session.calls == []

    @pytest.mark.asyncio
    async def test_window_commands_reach_the_bridge(self, bridge, bridge_dispatcher) -> None:
        shown = []
        bridge.register("show_main_window", lambda args: shown.append(True))

        await SystemApi(bridge_dispatcher).show_main_window()

        assert shown == [True]
