from typing import Optional

import httpx

from proposal_workflow.client.retry import RetryPolicy, with_retry
from proposal_workflow.config import settings


class ProposalClient:
    """Submitter-side access to the proposal API with bounded retries.

    Submission is safe to repeat: the server treats a second submit of a
    pending proposal as a no-op, so a timed-out attempt that still lands
    server-side does no harm.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.policy = policy or RetryPolicy.from_settings()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "ProposalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self._client.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    async def save_proposal(self, proposal_uuid: str, data: dict) -> dict:
        return await with_retry(
            lambda: self._request("PUT", f"/proposals/{proposal_uuid}", json=data),
            policy=self.policy,
        )

    async def submit_proposal(self, proposal_uuid: str) -> dict:
        return await with_retry(
            lambda: self._request("POST", f"/proposals/{proposal_uuid}/submit"),
            policy=self.policy,
        )
