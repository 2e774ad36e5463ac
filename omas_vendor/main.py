"""
Vendor agent wiring and lifecycle.

build_agent() creates every component with explicit dependencies (one
CredentialManager shared by all authenticated calls). VendorAgent.run():

1. Load or register the offline token (device flow on first run)
2. Log GET /v1/info (auth status + message of the day)
3. Poll changed fulfillments and dispatch each to the state machine
4. On stop: leave the poll loop, drain running pipelines, cancel leftovers
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Optional

from omas_vendor.config import Settings, settings as default_settings
from omas_vendor.core.errors import OrderTransitionError
from omas_vendor.models.fulfillment import InfoResponse
from omas_vendor.services.credential_manager import CredentialManager
from omas_vendor.services.cursor_store import CursorStore
from omas_vendor.services.decision_provider import ConsoleDecisionProvider, DecisionProvider
from omas_vendor.services.device_authorizer import DeviceAuthorizer
from omas_vendor.services.fulfillment_pipeline import FulfillmentPipeline, PipelineTasks
from omas_vendor.services.fulfillment_service import FulfillmentStateMachine
from omas_vendor.services.order_poller import OrderPoller
from omas_vendor.services.token_refresher import TokenRefresher
from omas_vendor.services.token_store import TokenStore
from omas_vendor.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)


@dataclass
class VendorAgent:
    settings: Settings
    token_store: TokenStore
    credentials: CredentialManager
    client: VendorApiClient
    poller: OrderPoller
    state_machine: FulfillmentStateMachine
    stop_event: asyncio.Event

    def stop(self) -> None:
        if not self.stop_event.is_set():
            logger.info("Shutdown requested")
        self.stop_event.set()

    async def log_info(self) -> InfoResponse:
        info = await self.client.get_info()
        auth_status = "authenticated" if info.user.authenticated else "invalid"
        logger.info("auth: %s, motd: %s", auth_status, info.motd)
        return info

    async def run(self) -> None:
        await self.credentials.ensure_access_credential()
        await self.log_info()

        # Streaming of order changes is not offered by the API; polling is the only feed.
        try:
            async for fulfillment in self.poller.poll():
                try:
                    await self.state_machine.handle(fulfillment)
                except OrderTransitionError as e:
                    logger.error(
                        "Transition failed (%s): fulfillment=%s step=%s cause=%r",
                        e.code, e.name, e.step, e.cause,
                    )
                if self.stop_event.is_set():
                    break
        finally:
            await self.state_machine.tasks.drain(self.settings.shutdown_timeout_s)

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no signal handlers; Ctrl+C raises instead
                logger.debug("Signal handler for %s not installed", sig)


def build_credentials(cfg: Settings, token_store: TokenStore) -> CredentialManager:
    return CredentialManager(
        token_store,
        DeviceAuthorizer(
            device_url=cfg.auth_device_url,
            token_url=cfg.auth_token_url,
            client_id=cfg.auth_client_id,
            scope=cfg.auth_scope,
            timeout=cfg.http_timeout_s,
            default_interval_s=cfg.device_poll_default_interval_s,
            jitter_s=cfg.device_poll_jitter_s,
        ),
        TokenRefresher(
            token_url=cfg.auth_token_url,
            client_id=cfg.auth_client_id,
            timeout=cfg.http_timeout_s,
        ),
        safety_margin_s=cfg.token_safety_margin_s,
    )


def build_agent(
    cfg: Optional[Settings] = None,
    decisions: Optional[DecisionProvider] = None,
) -> VendorAgent:
    cfg = cfg or default_settings
    stop_event = asyncio.Event()

    token_store = TokenStore(
        client_id=cfg.auth_client_id,
        encryption_key=cfg.token_encryption_key or "",
        data_dir=cfg.data_dir,
    )
    credentials = build_credentials(cfg, token_store)
    client = VendorApiClient(credentials, cfg.api_url, timeout=cfg.http_timeout_s)
    cursor_store = CursorStore(parent=cfg.vendor_parent, data_dir=cfg.data_dir)
    poller = OrderPoller(client, cursor_store, stop_event=stop_event, interval_s=cfg.poll_interval_s)
    pipeline = FulfillmentPipeline(
        client,
        delay_min_s=cfg.simulated_delay_min_s,
        delay_max_s=cfg.simulated_delay_max_s,
        delivery_update_estimate_s=cfg.delivery_update_estimate_s,
    )
    state_machine = FulfillmentStateMachine(
        client,
        decisions or ConsoleDecisionProvider(timeout_s=cfg.decision_timeout_s),
        pipeline,
        PipelineTasks(),
        packaging_estimate_s=cfg.packaging_estimate_s,
        delivery_estimate_s=cfg.delivery_estimate_s,
        decline_reason=cfg.decline_reason,
    )
    return VendorAgent(
        settings=cfg,
        token_store=token_store,
        credentials=credentials,
        client=client,
        poller=poller,
        state_machine=state_machine,
        stop_event=stop_event,
    )
