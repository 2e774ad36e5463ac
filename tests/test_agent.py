"""
Tests for VendorAgent wiring and the CLI entry point.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import DEMO_NAME
from omas_vendor.__main__ import main
from omas_vendor.config import Settings
from omas_vendor.core.errors import AuthError, AuthErrorKind, OrderTransitionError, VendorApiError
from omas_vendor.main import VendorAgent, build_agent
from omas_vendor.models.fulfillment import Fulfillment, InfoResponse, User
from omas_vendor.services.decision_provider import Decision, FixedDecisionProvider


def make_agent(fulfillments, handle=None):
    stop = asyncio.Event()

    async def poll():
        for f in fulfillments:
            yield f

    poller = MagicMock()
    poller.poll = poll
    client = MagicMock()
    client.get_info = AsyncMock(return_value=InfoResponse(user=User(authenticated=True), motd="welcome"))
    credentials = MagicMock()
    credentials.ensure_access_credential = AsyncMock()
    state_machine = MagicMock()
    state_machine.handle = handle or AsyncMock()
    state_machine.tasks.drain = AsyncMock()
    return VendorAgent(
        settings=Settings(shutdown_timeout_s=3),
        token_store=MagicMock(),
        credentials=credentials,
        client=client,
        poller=poller,
        state_machine=state_machine,
        stop_event=stop,
    )


class TestVendorAgent:
    @pytest.mark.asyncio
    async def test_run_dispatches_and_drains(self):
        orders = [Fulfillment(name=DEMO_NAME, state="PENDING"), Fulfillment(name=DEMO_NAME, state="RECEIVED")]
        agent = make_agent(orders)

        await agent.run()

        agent.credentials.ensure_access_credential.assert_awaited_once()
        agent.client.get_info.assert_awaited_once()
        assert [c.args[0].state.value for c in agent.state_machine.handle.await_args_list] == ["PENDING", "RECEIVED"]
        agent.state_machine.tasks.drain.assert_awaited_once_with(3)

    @pytest.mark.asyncio
    async def test_transition_error_does_not_stop_the_loop(self):
        orders = [Fulfillment(name=DEMO_NAME + "1"), Fulfillment(name=DEMO_NAME + "2")]
        handle = AsyncMock(side_effect=[
            OrderTransitionError(DEMO_NAME + "1", "confirm_ack", VendorApiError(500)),
            None,
        ])
        agent = make_agent(orders, handle=handle)

        await agent.run()

        assert handle.await_count == 2

    @pytest.mark.asyncio
    async def test_stop_leaves_the_loop(self):
        agent = make_agent([Fulfillment(name=DEMO_NAME + str(i)) for i in range(5)])
        agent.state_machine.handle = AsyncMock(side_effect=lambda f: agent.stop())

        await agent.run()

        assert agent.state_machine.handle.await_count == 1
        agent.state_machine.tasks.drain.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_log_info(self, caplog):
        agent = make_agent([])

        with caplog.at_level(logging.INFO, logger="omas_vendor.main"):
            info = await agent.log_info()

        assert info.motd == "welcome"
        assert "auth: authenticated, motd: welcome" in caplog.text

    @pytest.mark.asyncio
    async def test_auth_failure_propagates(self):
        agent = make_agent([])
        agent.credentials.ensure_access_credential = AsyncMock(
            side_effect=AuthError(AuthErrorKind.DEVICE_FLOW_DENIED),
        )

        with pytest.raises(AuthError):
            await agent.run()


class TestBuildAgent:
    def test_components_share_settings(self, tmp_path):
        cfg = Settings(data_dir=str(tmp_path), vendor_id="acme", auth_client_id="acme-client")

        agent = build_agent(cfg, decisions=FixedDecisionProvider(Decision.ACCEPT))

        assert agent.token_store.path == tmp_path / "acme-client-token.jwt"
        assert agent.poller.page_token is None
        assert agent.settings is cfg


class TestCli:
    def test_logout_clears_token(self, tmp_path):
        cfg = Settings(data_dir=str(tmp_path))
        token_file = tmp_path / f"{cfg.auth_client_id}-token.jwt"
        token_file.write_text("rt_1")

        with patch("omas_vendor.__main__.settings", cfg), patch("omas_vendor.__main__.setup_logging"):
            assert main(["logout"]) == 0

        assert not token_file.exists()

    def test_auth_failure_exit_code(self, tmp_path):
        cfg = Settings(data_dir=str(tmp_path))

        async def failing(agent):
            raise AuthError(AuthErrorKind.REFRESH_REJECTED, detail="invalid_grant")

        with patch("omas_vendor.__main__.settings", cfg), \
                patch("omas_vendor.__main__.setup_logging"), \
                patch("omas_vendor.__main__._info", failing):
            assert main(["info"]) == 1
