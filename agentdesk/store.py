"""Backing store client — HTTP query API of the persistence service.

A client is request-scoped: it is built with the credential obtained for
one chat request and closed when that request's stream ends. Never cache
an instance at module level, since the credential belongs to one caller.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentdesk.errors import BackingStoreError

logger = logging.getLogger(__name__)


class BackingStoreClient:
    """Thin async wrapper around ``POST /api/query``.

    Replies look like ``{"status": "success", "value": ...}`` or
    ``{"status": "error", "errorMessage": "..."}``.
    """

    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def __aenter__(self) -> BackingStoreClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def query(self, path: str, args: dict[str, Any]) -> Any:
        """Run a named query function and return its value."""
        logger.debug(f"Backing store query: {path}")
        try:
            response = await self._client.post(
                "/api/query",
                json={"path": path, "args": args, "format": "json"},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BackingStoreError(f"Query '{path}' failed: {e}") from e

        if payload.get("status") != "success":
            message = payload.get("errorMessage") or "unknown error"
            raise BackingStoreError(f"Query '{path}' failed: {message}")
        return payload.get("value")

    # ------------------------------------------------------------------
    # userData queries
    # ------------------------------------------------------------------

    async def get_user_data(self, user_id: str, organization_id: str) -> dict | None:
        return await self.query(
            "userData:getUserData",
            {"userId": user_id, "organizationId": organization_id},
        )

    async def get_user_files(self, user_id: str, organization_id: str) -> list[dict]:
        files = await self.query(
            "userData:getUserFiles",
            {"userId": user_id, "organizationId": organization_id},
        )
        return files or []

    async def get_file_by_storage_id(
        self,
        storage_id: str,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> dict | None:
        args: dict[str, Any] = {"storageId": storage_id}
        if user_id:
            args["userId"] = user_id
        if organization_id:
            args["organizationId"] = organization_id
        return await self.query("userData:getFileByStorageId", args)
