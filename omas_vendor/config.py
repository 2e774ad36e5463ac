"""
Omas Demo Vendor Configuration
===============================

PURPOSE:
    Pydantic-Settings based configuration for the vendor agent.
    All settings can be overridden via environment variables (OMAS_ prefix)
    or a local .env file.
"""

import logging
import os
from typing import Literal, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_DEFAULT_AUTH_REALM = "https://auth.omas.app/realms/omas/protocol/openid-connect"


class Settings(BaseSettings):
    app_name: str = "omas-demo-vendor"
    app_version: str = os.environ.get("OMAS_VERSION", "dev")

    # Vendor identity
    vendor_id: str = "demo-vendor"

    # Omas REST API
    api_url: str = "https://api.omas.app"
    http_timeout_s: float = 10.0

    # OAuth (device authorization grant + refresh token grant)
    auth_token_url: str = f"{_DEFAULT_AUTH_REALM}/token"
    auth_device_url: str = f"{_DEFAULT_AUTH_REALM}/auth/device"
    auth_client_id: str = "demo-client"
    auth_scope: str = "openid omas offline_access"
    token_safety_margin_s: float = 30.0
    device_poll_default_interval_s: float = 5.0
    device_poll_jitter_s: float = 0.5

    # Local state: offline token + poll cursor
    data_dir: str = "."
    # Fernet key; when unset the offline token is stored as plain text (chmod 600)
    token_encryption_key: Optional[str] = None

    # Order polling
    poll_interval_s: float = 5.0

    # Order handling
    decision_timeout_s: float = 30.0
    decline_reason: str = "vendor closed"
    packaging_estimate_s: int = 300
    delivery_estimate_s: int = 3600
    delivery_update_estimate_s: int = 300
    simulated_delay_min_s: float = 5.0
    simulated_delay_max_s: float = 30.0
    shutdown_timeout_s: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_dir: Optional[str] = None

    class Config:
        env_file = ".env"
        env_prefix = "OMAS_"

    @property
    def vendor_parent(self) -> str:
        """Parent resource name of this vendor's fulfillments."""
        return f"vendors/{self.vendor_id}"


settings = Settings()

if settings.simulated_delay_min_s > settings.simulated_delay_max_s:
    logger.warning(
        "OMAS_SIMULATED_DELAY_MIN_S (%.1f) > OMAS_SIMULATED_DELAY_MAX_S (%.1f) — using min for both",
        settings.simulated_delay_min_s, settings.simulated_delay_max_s,
    )
    settings.simulated_delay_max_s = settings.simulated_delay_min_s
