"""
api_store.py — Location store reads over the Tracemap API.

Implements the store interface TraceQuery expects on top of an
authenticated httpx.AsyncClient (the one SessionGate logged in with).
Non-2xx answers raise httpx.HTTPStatusError; TraceQuery turns any of
these into QueryFailed.
"""

from typing import Any, Iterable, Optional
from urllib.parse import quote

import httpx


class ApiLocationStore:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def select_locations(
        self,
        where: dict[str, str],
        fields: Iterable[str],
    ) -> list[dict[str, Any]]:
        params = {**where, "fields": ",".join(fields)}
        response = await self.client.get("/api/locations", params=params)
        response.raise_for_status()
        return response.json()

    async def find_username(self, user_id: str) -> Optional[str]:
        response = await self.client.get(f"/api/profiles/{quote(user_id, safe='')}")
        response.raise_for_status()
        return response.json().get("username")

    async def distinct_users(self) -> list[dict[str, Any]]:
        response = await self.client.get("/api/locations/users")
        response.raise_for_status()
        return response.json()
