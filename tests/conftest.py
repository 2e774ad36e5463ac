"""
Pytest configuration for the vendor agent tests.
Points local state at a temp directory and fast defaults before any imports.
"""

import os
import tempfile

_test_data_dir = tempfile.mkdtemp(prefix="omas_vendor_test_")
os.environ.setdefault("OMAS_DATA_DIR", _test_data_dir)
os.environ.setdefault("OMAS_POLL_INTERVAL_S", "0")
os.environ.setdefault("OMAS_SIMULATED_DELAY_MIN_S", "0")
os.environ.setdefault("OMAS_SIMULATED_DELAY_MAX_S", "0")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from omas_vendor.models.credentials import AccessCredential, TokenGrant

AUTH_TOKEN_URL = "https://auth.test/token"
AUTH_DEVICE_URL = "https://auth.test/device"
API_URL = "https://api.test"
DEMO_NAME = "vendors/demo-vendor/fulfillments/1"


def make_grant(token="at_1", offline="rt_1", expires_in=300) -> TokenGrant:
    return TokenGrant(
        access=AccessCredential(
            token=token,
            token_type="Bearer",
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            scope="openid omas offline_access",
        ),
        offline_credential=offline,
    )


@pytest.fixture
def valid_credentials():
    """CredentialManager stand-in that always hands out the same token."""
    manager = MagicMock()
    manager.ensure_access_credential = AsyncMock(return_value=make_grant().access)
    return manager


@pytest.fixture
def no_sleep():
    """Injectable sleep that records requested delays and returns immediately."""
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
