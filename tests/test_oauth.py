from __future__ import annotations

import asyncio

import pytest

from relay_console.bridge import BridgeError, OAUTH_CALLBACK_RECEIVED, OAUTH_URL_GENERATED
from relay_console.errors import DispatchError, ErrorKind, ValidationError
from relay_console.models import DialogTab, OAuthPhase
from relay_console.oauth import (
    OAuthFlowController,
    OAuthFlowError,
    classify_error,
    extract_authorization_code,
)

from conftest import settle

AUTH_URL = "https://accounts.example/o/oauth2/auth?client_id=relay"


class BridgeBackend:
    """Records the OAuth commands the controller sends through the bridge."""

    def __init__(self, bridge):
        self.bridge = bridge
        self.calls: list[str] = []
        self.prepare_result = AUTH_URL
        self.exchange_result = {"email": "new@example.com"}
        self.exchange_error: Exception | None = None
        self.release: asyncio.Event | None = None
        self.cancel_release: asyncio.Event | None = None
        for name in ("prepare_oauth_url", "start_oauth_login", "complete_oauth_login", "cancel_oauth_login"):
            bridge.register(name, self._handler(name))

    def _handler(self, name):
        async def handle(args):
            self.calls.append(name)
            if name == "prepare_oauth_url":
                if isinstance(self.prepare_result, Exception):
                    raise self.prepare_result
                return self.prepare_result
            if name == "cancel_oauth_login":
                if self.cancel_release is not None:
                    await self.cancel_release.wait()
                return None
            if self.release is not None:
                await self.release.wait()
            if self.exchange_error is not None:
                raise self.exchange_error
            return self.exchange_result

        return handle


class RefreshRecorder:
    def __init__(self, error: Exception | None = None):
        self.count = 0
        self.error = error

    async def __call__(self):
        self.count += 1
        if self.error is not None:
            raise self.error
        return []


@pytest.fixture()
def backend(bridge) -> BridgeBackend:
    return BridgeBackend(bridge)


@pytest.fixture()
def refresh() -> RefreshRecorder:
    return RefreshRecorder()


@pytest.fixture()
def flow(bridge_dispatcher, backend, refresh) -> OAuthFlowController:
    return OAuthFlowController(bridge_dispatcher, refresh=refresh)


class TestDialogLifecycle:
    @pytest.mark.asyncio
    async def test_opening_on_oauth_tab_prepares_url(self, flow, backend) -> None:
        session = await flow.open_dialog(DialogTab.OAUTH)

        assert session.authorization_url == AUTH_URL
        assert session.phase is OAuthPhase.URL_PREPARED
        assert backend.calls == ["prepare_oauth_url"]

    @pytest.mark.asyncio
    async def test_opening_on_another_tab_does_not_prepare(self, flow, backend) -> None:
        session = await flow.open_dialog(DialogTab.TOKEN)

        assert session.authorization_url is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_cancel_clears_url_and_tells_backend(self, flow, backend) -> None:
        await flow.open_dialog()

        await flow.cancel()

        assert flow.session.authorization_url is None
        assert flow.session.phase is OAuthPhase.CANCELLED
        assert backend.calls[-1] == "cancel_oauth_login"

    @pytest.mark.asyncio
    async def test_cancel_without_url_does_nothing(self, flow, backend) -> None:
        await flow.open_dialog(DialogTab.IMPORT)

        await flow.cancel()

        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_leaving_oauth_tab_cancels_and_returning_prepares_again(self, flow, backend) -> None:
        await flow.open_dialog()

        await flow.select_tab(DialogTab.TOKEN)
        assert flow.session.authorization_url is None
        assert backend.calls == ["prepare_oauth_url", "cancel_oauth_login"]

        await flow.select_tab(DialogTab.OAUTH)
        assert flow.session.authorization_url == AUTH_URL
        assert backend.calls[-1] == "prepare_oauth_url"

    @pytest.mark.asyncio
    async def test_closing_cancels_and_drops_session(self, flow, backend, bridge) -> None:
        await flow.open_dialog()

        await flow.close_dialog()
        bridge.emit(OAUTH_CALLBACK_RECEIVED)
        await settle()

        assert flow.session is None
        assert not flow.is_open
        assert backend.calls == ["prepare_oauth_url", "cancel_oauth_login"]

    @pytest.mark.asyncio
    async def test_callback_during_slow_tab_switch_cancel_is_ignored(self, flow, backend, bridge) -> None:
        backend.cancel_release = asyncio.Event()
        await flow.open_dialog()

        switching = asyncio.ensure_future(flow.select_tab(DialogTab.IMPORT))
        await settle()
        assert backend.calls[-1] == "cancel_oauth_login"

        bridge.emit(OAUTH_CALLBACK_RECEIVED)
        await settle()
        backend.cancel_release.set()
        await switching
        await settle()

        assert "complete_oauth_login" not in backend.calls
        assert flow.active_tab is DialogTab.IMPORT

    @pytest.mark.asyncio
    async def test_callback_during_slow_close_is_ignored(self, flow, backend) -> None:
        backend.cancel_release = asyncio.Event()
        await flow.open_dialog()

        closing = asyncio.ensure_future(flow.close_dialog())
        await settle()

        assert await flow.handle_completion_signal() is False
        backend.cancel_release.set()
        await closing

        assert "complete_oauth_login" not in backend.calls

    @pytest.mark.asyncio
    async def test_cancel_clears_url_before_backend_answers(self, flow, backend) -> None:
        backend.cancel_release = asyncio.Event()
        session = await flow.open_dialog()

        cancelling = asyncio.ensure_future(flow.cancel())
        await settle()

        assert session.authorization_url is None
        assert session.phase is OAuthPhase.CANCELLED
        assert await flow.handle_completion_signal() is False
        backend.cancel_release.set()
        await cancelling

    @pytest.mark.asyncio
    async def test_operations_require_an_open_dialog(self, flow) -> None:
        with pytest.raises(OAuthFlowError):
            await flow.start()

    @pytest.mark.asyncio
    async def test_prepare_failure_is_recorded(self, flow, backend) -> None:
        backend.prepare_result = BridgeError("no listener")

        session = await flow.open_dialog()

        assert session.authorization_url is None
        assert session.last_error == "no listener"

    @pytest.mark.asyncio
    async def test_generated_url_event_fills_in_the_link(self, flow, backend, bridge) -> None:
        backend.prepare_result = None
        await flow.open_dialog()

        bridge.emit(OAUTH_URL_GENERATED, "https://accounts.example/generated")
        await settle()

        assert flow.session.authorization_url == "https://accounts.example/generated"
        assert flow.session.phase is OAuthPhase.URL_PREPARED


class TestNativeCompletion:
    @pytest.mark.asyncio
    async def test_start_exchanges_and_refreshes(self, flow, backend, refresh) -> None:
        await flow.open_dialog()

        session = await flow.start()

        assert session.phase is OAuthPhase.SUCCEEDED
        assert session.account_email == "new@example.com"
        assert session.message == "Added new@example.com"
        assert refresh.count == 1
        assert backend.calls == ["prepare_oauth_url", "start_oauth_login"]

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_undo_success(self, bridge_dispatcher, backend) -> None:
        refresh = RefreshRecorder(DispatchError(ErrorKind.TRANSPORT, "offline"))
        flow = OAuthFlowController(bridge_dispatcher, refresh=refresh)
        await flow.open_dialog()

        session = await flow.start()

        assert session.phase is OAuthPhase.SUCCEEDED
        assert session.last_error is None
        assert refresh.count == 1

    @pytest.mark.asyncio
    async def test_finish_completes_through_the_bridge(self, flow, backend) -> None:
        await flow.open_dialog()

        session = await flow.finish()

        assert session.phase is OAuthPhase.SUCCEEDED
        assert backend.calls[-1] == "complete_oauth_login"

    @pytest.mark.asyncio
    async def test_signal_after_success_is_ignored(self, flow, backend) -> None:
        await flow.open_dialog()
        await flow.start()

        assert await flow.handle_completion_signal() is False

        assert flow.session.phase is OAuthPhase.SUCCEEDED
        assert flow.session.last_error is None
        assert "complete_oauth_login" not in backend.calls

    @pytest.mark.asyncio
    async def test_callback_event_completes_the_flow(self, flow, backend, bridge) -> None:
        await flow.open_dialog()

        bridge.emit(OAUTH_CALLBACK_RECEIVED, {"code": "ignored"})
        await settle()

        assert flow.session.phase is OAuthPhase.SUCCEEDED
        assert backend.calls == ["prepare_oauth_url", "complete_oauth_login"]

    @pytest.mark.asyncio
    async def test_callback_event_while_exchanging_is_ignored(self, flow, backend, bridge) -> None:
        backend.release = asyncio.Event()
        await flow.open_dialog()

        pending = asyncio.ensure_future(flow.start())
        await settle()
        assert flow.session.phase is OAuthPhase.EXCHANGING

        bridge.emit(OAUTH_CALLBACK_RECEIVED)
        await settle()
        with pytest.raises(OAuthFlowError):
            await flow.finish()

        backend.release.set()
        session = await pending

        assert session.phase is OAuthPhase.SUCCEEDED
        assert backend.calls.count("complete_oauth_login") == 0

    @pytest.mark.asyncio
    async def test_callback_event_on_another_tab_is_ignored(self, flow, backend, bridge) -> None:
        await flow.open_dialog()
        await flow.select_tab(DialogTab.IMPORT)

        bridge.emit(OAUTH_CALLBACK_RECEIVED)
        await settle()

        assert "complete_oauth_login" not in backend.calls

    @pytest.mark.asyncio
    async def test_signal_without_prepared_url_is_ignored(self, flow, backend) -> None:
        backend.prepare_result = BridgeError("no listener")
        await flow.open_dialog()

        assert await flow.handle_completion_signal() is False
        assert "complete_oauth_login" not in backend.calls

    @pytest.mark.asyncio
    async def test_exchange_finishing_after_cancel_stays_cancelled(self, flow, backend, refresh) -> None:
        backend.release = asyncio.Event()
        await flow.open_dialog()

        pending = asyncio.ensure_future(flow.start())
        await settle()
        await flow.cancel()
        backend.release.set()
        session = await pending

        assert session.phase is OAuthPhase.CANCELLED
        assert refresh.count == 0

    @pytest.mark.asyncio
    async def test_failed_exchange_is_classified(self, flow, backend) -> None:
        backend.exchange_error = BridgeError("state mismatch")
        await flow.open_dialog()

        session = await flow.start()

        assert session.phase is OAuthPhase.FAILED
        assert session.last_error == "OAuth failed: state mismatch"

    @pytest.mark.asyncio
    async def test_missing_refresh_token_is_shown_verbatim(self, flow, backend) -> None:
        backend.exchange_error = BridgeError("Google did not return a refresh_token")
        await flow.open_dialog()

        session = await flow.finish()

        assert session.last_error == "Google did not return a refresh_token"


class TestNetworkCompletion:
    @pytest.fixture()
    def opened(self):
        return []

    @pytest.fixture()
    def network_flow(self, network_dispatcher, fake_session, opened) -> OAuthFlowController:
        fake_session.route("GET", "/api/oauth/url", body={"url": AUTH_URL})
        return OAuthFlowController(network_dispatcher, open_browser=opened.append)

    @pytest.mark.asyncio
    async def test_start_opens_the_browser(self, network_flow, opened) -> None:
        await network_flow.open_dialog()

        session = await network_flow.start()

        assert opened == [AUTH_URL]
        assert session.phase is OAuthPhase.AWAITING_COMPLETION

    @pytest.mark.asyncio
    async def test_pasted_redirect_url_is_exchanged(self, network_flow, fake_session) -> None:
        fake_session.route(
            "POST", "/api/oauth/exchange", body={"status": "success", "data": {"email": "web@example.com"}}
        )
        await network_flow.open_dialog()

        session = await network_flow.submit_code("http://localhost:8045/oauth-callback?code=4%2Fabc&scope=email")

        assert fake_session.calls[-1] == ("POST", "/api/oauth/exchange", {"code": "4/abc"})
        assert session.phase is OAuthPhase.SUCCEEDED
        assert session.account_email == "web@example.com"

    @pytest.mark.asyncio
    async def test_empty_code_is_rejected(self, network_flow, fake_session) -> None:
        await network_flow.open_dialog()

        with pytest.raises(ValidationError):
            await network_flow.submit_code("   ")

        assert network_flow.session.last_error == "Authorization code is required"
        assert ("POST", "/api/oauth/exchange") not in fake_session.paths()

    @pytest.mark.asyncio
    async def test_finish_without_pasted_code_asks_for_one(self, network_flow) -> None:
        await network_flow.open_dialog()

        with pytest.raises(ValidationError):
            await network_flow.finish()

    @pytest.mark.asyncio
    async def test_finish_exchanges_the_code_in_the_entry(self, network_flow, fake_session) -> None:
        fake_session.route(
            "POST", "/api/oauth/exchange", body={"status": "success", "data": {"email": "web@example.com"}}
        )
        await network_flow.open_dialog()

        session = await network_flow.finish("http://localhost:8045/oauth-callback?code=4%2Fxyz")

        assert fake_session.calls[-1] == ("POST", "/api/oauth/exchange", {"code": "4/xyz"})
        assert session.phase is OAuthPhase.SUCCEEDED

    @pytest.mark.asyncio
    async def test_rejected_code_fails_the_flow(self, network_flow, fake_session) -> None:
        fake_session.route("POST", "/api/oauth/exchange", status=400, body={"status": "error", "message": "invalid_grant"})
        await network_flow.open_dialog()

        session = await network_flow.submit_code("4/abc")

        assert session.phase is OAuthPhase.FAILED
        assert session.last_error == "OAuth failed: invalid_grant"

    @pytest.mark.asyncio
    async def test_cancel_makes_no_request(self, network_flow, fake_session) -> None:
        await network_flow.open_dialog()

        await network_flow.close_dialog()

        assert fake_session.paths() == [("GET", "/api/oauth/url")]

    @pytest.mark.asyncio
    async def test_start_without_url_fails(self, network_dispatcher, fake_session, opened) -> None:
        fake_session.route("GET", "/api/oauth/url", status=500, text="")
        flow = OAuthFlowController(network_dispatcher, open_browser=opened.append)
        await flow.open_dialog()

        session = await flow.start()

        assert session.phase is OAuthPhase.FAILED
        assert session.last_error == "OAuth failed: HTTP 500"
        assert opened == []


class TestCodeExtraction:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("4/0AbCdEf", "4/0AbCdEf"),
            ("  4/0AbCdEf \n", "4/0AbCdEf"),
            ("http://localhost:8045/oauth-callback?code=4%2F0Ab&scope=email", "4/0Ab"),
            ("?code=xyz&state=1", "xyz"),
            ("code=xyz", "xyz"),
            ("http://[bad?code=xyz", "xyz"),
        ],
    )
    def test_extracts_code(self, raw, expected) -> None:
        assert extract_authorization_code(raw) == expected


class TestErrorClassification:
    def test_credential_errors_are_verbatim(self) -> None:
        assert classify_error("OAuth", "Refresh Token missing") == "Refresh Token missing"

    def test_environment_errors_are_explained(self) -> None:
        message = classify_error("OAuth", "Not supported in this Environment")
        assert message == "This action is not available in the current environment: Not supported in this Environment"

    def test_other_errors_name_the_action(self) -> None:
        assert classify_error("OAuth", "timeout") == "OAuth failed: timeout"
