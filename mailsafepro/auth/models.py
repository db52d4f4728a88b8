from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..errors import APIError


def _malformed(field_name: str) -> APIError:
    return APIError(
        f"Token response missing {field_name}.",
        code="MALFORMED_RESPONSE",
        details={"field": field_name},
    )


@dataclass(frozen=True)
class UserSession:
    access_token: str
    refresh_token: str
    expires_in: int
    expires_at: float
    email: str | None = None
    scopes: tuple[str, ...] = field(default_factory=tuple)

    def is_expired(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at

    def seconds_until_expiry(self, now: float | None = None) -> float:
        current = time.time() if now is None else now
        return max(0.0, self.expires_at - current)

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        *,
        now: float | None = None,
        email: str | None = None,
        scopes: Iterable[str] | None = None,
    ) -> "UserSession":
        """Build a session from a login, register or refresh response.

        A refresh response may omit ``email`` and ``scopes``; the values passed
        in from the previous session are used instead.
        """
        if not isinstance(payload, dict):
            raise APIError(
                "Token response must be a JSON object.",
                code="MALFORMED_RESPONSE",
                details={"payload": payload},
            )

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        payload_email = payload.get("email", email)
        payload_scopes = payload.get("scopes", scopes)

        if not isinstance(access_token, str) or not access_token:
            raise _malformed("access_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise _malformed("refresh_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise _malformed("expires_in")
        if payload_email is not None and not isinstance(payload_email, str):
            raise APIError(
                "Token response email must be a string.", code="MALFORMED_RESPONSE"
            )
        if payload_scopes is None:
            payload_scopes = ()
        if isinstance(payload_scopes, str) or not all(
            isinstance(scope, str) for scope in payload_scopes
        ):
            raise APIError(
                "Token response scopes must be a list of strings.",
                code="MALFORMED_RESPONSE",
            )

        issued_at = time.time() if now is None else now
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            expires_at=issued_at + expires_in,
            email=payload_email,
            scopes=tuple(payload_scopes),
        )
