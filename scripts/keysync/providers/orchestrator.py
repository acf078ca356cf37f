"""Workload inventory from the orchestrator's pod listing."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from scripts.keysync.base_provider import BaseProvider
from scripts.keysync.config import HttpConfig, OrchestratorConfig
from scripts.keysync.errors import InventoryUnavailable
from scripts.keysync.models import Workload

logger = logging.getLogger("keysync.orchestrator")

INTERNAL_TOKEN_HEADER = "x-rabbit-internal-token"


class OrchestratorClient(BaseProvider):
    PROVIDER_NAME = "orchestrator"

    def __init__(
        self,
        config: OrchestratorConfig,
        http: HttpConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(http, client)
        self.config = config

    async def fetch_workloads(self) -> list[Workload]:
        """Return every running workload. Raises InventoryUnavailable.

        An empty listing counts as a failure.
        """
        url = self.config.pods_url
        headers = {INTERNAL_TOKEN_HEADER: self.config.token}
        try:
            resp = await self._get(url, headers=headers)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise InventoryUnavailable(
                f"No response from container lookup at [{url}]: {exc}"
            ) from exc

        items = body.get("items") if isinstance(body, dict) else None
        if not items:
            raise InventoryUnavailable(f"No containers returned from [{url}]")

        workloads = [Workload.from_item(item) for item in items if isinstance(item, dict)]
        logger.info(
            "Fetched %d workloads", len(workloads),
            extra={"stage": "inventory", "count": len(workloads)},
        )
        return workloads
