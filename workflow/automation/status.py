"""External status push.

The automation layer reports every applied transition to the issue tracker
through a ``StatusPusher``. ``WebhookStatusPusher`` posts the change to a
bridge service; ``LocalStatusPusher`` only records it, for deployments that
keep status locally.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import httpx

from ..settings import STATUS_PUSH_TIMEOUT
from .models import StatusUpdateResult

logger = logging.getLogger(__name__)


class WebhookStatusPusher:
    """POSTs ``{owner, repo, issue_number, status}`` to a bridge endpoint."""

    def __init__(
        self,
        url: str,
        token: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = STATUS_PUSH_TIMEOUT,
    ):
        self.url = url
        self.token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def update_status(self, owner: str, repo: str, issue_number: int, status: str) -> StatusUpdateResult:
        payload = {"owner": owner, "repo": repo, "issue_number": issue_number, "status": status}
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            resp = await self._client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Status push for {owner}/{repo}#{issue_number} failed: {e}")
            return StatusUpdateResult(success=False, error=str(e))

        if resp.status_code >= 400:
            error = f"status push returned {resp.status_code}: {resp.text[:200]}"
            logger.error(f"Status push for {owner}/{repo}#{issue_number} failed: {error}")
            return StatusUpdateResult(success=False, error=error)

        logger.info(f"Pushed status '{status}' to {owner}/{repo}#{issue_number}")
        return StatusUpdateResult(success=True)


class LocalStatusPusher:
    """Accepts every update and remembers it."""

    def __init__(self):
        self.updates: List[Tuple[str, str, int, str]] = []

    async def update_status(self, owner: str, repo: str, issue_number: int, status: str) -> StatusUpdateResult:
        self.updates.append((owner, repo, issue_number, status))
        logger.info(f"Recorded status '{status}' for {owner}/{repo}#{issue_number}")
        return StatusUpdateResult(success=True)
