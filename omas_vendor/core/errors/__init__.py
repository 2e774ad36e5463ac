"""
Error code system.

OmasError is the base exception for all structured errors raised by the
vendor agent. Every error carries a registry-style code so log lines can be
grepped and counted by failure class.

Usage:
    from omas_vendor.core.errors import AuthError, AuthErrorKind
    raise AuthError(AuthErrorKind.REFRESH_REJECTED, detail="invalid_grant")
"""

from __future__ import annotations

import re
from enum import Enum

CODE_PATTERN = re.compile(r"^OMS-[A-Z]{2,6}-\d{3}$")


class OmasError(Exception):
    """Structured application error.

    Args:
        code: Error code, e.g. "OMS-AUTH-003".
        detail: Internal detail message for logs.
        context: Arbitrary key-value context for structured logging.
    """

    def __init__(
        self,
        code: str,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class AuthErrorKind(str, Enum):
    DEVICE_FLOW_DENIED = "OMS-AUTH-001"
    DEVICE_FLOW_EXPIRED = "OMS-AUTH-002"
    REFRESH_REJECTED = "OMS-AUTH-003"
    TRANSPORT_ERROR = "OMS-AUTH-004"


class AuthError(OmasError):
    """Credential acquisition failed.

    REFRESH_REJECTED means the offline credential is revoked or expired and
    the device flow must run again. TRANSPORT_ERROR is retryable by the
    caller's own schedule.
    """

    def __init__(self, kind: AuthErrorKind, detail: str | None = None) -> None:
        self.kind = kind
        super().__init__(kind.value, detail=detail, context={"kind": kind.name})


class VendorApiError(OmasError):
    """Non-2xx response or transport failure from the vendor REST API.

    status_code is 0 when no response was received.
    """

    def __init__(self, status_code: int, detail: str | None = None, path: str | None = None) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(
            "OMS-API-001",
            detail=detail,
            context={"status_code": status_code, "path": path},
        )


class PollError(OmasError):
    """A poll iteration failed. Never fatal to the poll loop."""

    def __init__(self, detail: str | None = None, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__("OMS-POLL-001", detail=detail)


class OrderTransitionError(OmasError):
    """A fulfillment transition failed; aborts that order's pipeline only."""

    def __init__(self, name: str, step: str, cause: BaseException) -> None:
        self.name = name
        self.step = step
        self.cause = cause
        super().__init__(
            "OMS-ORDER-001",
            detail=f"{name} failed at {step}: {cause}",
            context={"fulfillment": name, "step": step},
        )
