"""Remote calls behind the session manager."""

from __future__ import annotations

from typing import Any, Mapping

from ..constants import LOGIN_PATH, LOGOUT_PATH, REFRESH_PATH, REGISTER_PATH
from ..http import HttpClient


async def login(http_client: HttpClient, email: str, password: str) -> Any:
    return await http_client.post(LOGIN_PATH, json={"email": email, "password": password})


async def register(
    http_client: HttpClient,
    email: str,
    password: str,
    name: str | None = None,
) -> Any:
    body: dict[str, str] = {"email": email, "password": password}
    if name is not None:
        body["name"] = name
    return await http_client.post(REGISTER_PATH, json=body)


async def refresh(http_client: HttpClient, refresh_token: str) -> Any:
    return await http_client.post(REFRESH_PATH, json={"refresh_token": refresh_token})


async def logout(http_client: HttpClient, headers: Mapping[str, str]) -> None:
    await http_client.post(LOGOUT_PATH, json={}, headers=dict(headers))
