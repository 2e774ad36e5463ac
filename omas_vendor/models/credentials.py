"""
Credential Models
=================

Value types shared by the device authorizer, the token refresher and the
credential manager:

- AccessCredential: short-lived bearer token, memory-only.
- TokenGrant: a successful token endpoint response (access credential plus
  the offline/refresh token that mints the next one).
- DeviceAuthorization: the device endpoint response shown to the operator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


@dataclass(frozen=True)
class AccessCredential:
    token: str
    token_type: str
    expires_at: datetime
    scope: Optional[str] = None

    def is_valid(self, now: datetime, safety_margin_s: float = 0.0) -> bool:
        """True while now < expires_at - safety margin."""
        return now < self.expires_at - timedelta(seconds=safety_margin_s)

    @property
    def authorization_header(self) -> str:
        token_type = self.token_type or "Bearer"
        # Keycloak answers "bearer"; normalize the scheme
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        return f"{token_type} {self.token}"

    def __repr__(self) -> str:
        return (
            f"AccessCredential(token_type={self.token_type!r}, "
            f"expires_at={self.expires_at.isoformat()}, scope={self.scope!r})"
        )


@dataclass(frozen=True)
class TokenGrant:
    access: AccessCredential
    offline_credential: Optional[str] = None

    @classmethod
    def from_token_response(cls, data: dict, now: Optional[datetime] = None) -> "TokenGrant":
        """Build from an OAuth token endpoint JSON body.

        Raises KeyError/ValueError on a body without access_token.
        """
        now = now or datetime.now(timezone.utc)
        access_token = data["access_token"]
        if not access_token:
            raise ValueError("empty access_token")
        expires_in = float(data.get("expires_in") or 0)
        return cls(
            access=AccessCredential(
                token=access_token,
                token_type=data.get("token_type") or "Bearer",
                expires_at=now + timedelta(seconds=expires_in),
                scope=data.get("scope"),
            ),
            offline_credential=data.get("refresh_token") or None,
        )

    def __repr__(self) -> str:
        return f"TokenGrant(access={self.access!r}, rotated={self.offline_credential is not None})"


@dataclass(frozen=True)
class DeviceAuthorization:
    device_code: str
    user_code: str
    verification_uri: str
    interval_s: float
    expires_in_s: Optional[float] = None
    verification_uri_complete: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict, default_interval_s: float) -> "DeviceAuthorization":
        interval = data.get("interval")
        expires_in = data.get("expires_in")
        return cls(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_uri=data.get("verification_uri") or data.get("verification_url", ""),
            interval_s=float(interval) if interval and float(interval) > 0 else default_interval_s,
            expires_in_s=float(expires_in) if expires_in else None,
            verification_uri_complete=data.get("verification_uri_complete"),
        )
