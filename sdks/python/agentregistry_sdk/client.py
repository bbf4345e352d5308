"""Agent registry API client with async support."""

from __future__ import annotations

from typing import Any

import httpx


class RegistryAPIError(Exception):
    """Non-2xx response from the registry API."""

    def __init__(self, status_code: int, message: str, kind: str | None = None, code: str | None = None):
        self.status_code = status_code
        self.message = message
        self.kind = kind
        self.code = code
        super().__init__(f"{status_code} {kind or 'error'}: {message}")

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409

    @property
    def is_unavailable(self) -> bool:
        return self.status_code == 503

    @classmethod
    def from_response(cls, resp: httpx.Response) -> RegistryAPIError:
        try:
            detail = resp.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, dict):
            return cls(resp.status_code, detail.get("error", resp.reason_phrase), detail.get("kind"), detail.get("code"))
        return cls(resp.status_code, str(detail or resp.text or resp.reason_phrase))


class AgentRegistryClient:
    """Async client for the agent registry API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    async def __aenter__(self) -> AgentRegistryClient:
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Use 'async with AgentRegistryClient() as client:'")
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = await self.client.request(method, path, **kwargs)
        if resp.status_code >= 400:
            raise RegistryAPIError.from_response(resp)
        return resp.json()

    # --- Health ---

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/api/v1/health")

    # --- Networks ---

    async def list_networks(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/api/v1/networks")
        return data["networks"]

    # --- Publish ---

    async def prepare_publish(self, agent_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/api/v1/agents/{agent_id}/publish")

    async def confirm_publish(
        self, agent_id: str, tx_hash: str, chain_id: int, token_id: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"tx_hash": tx_hash, "chain_id": chain_id}
        if token_id is not None:
            body["token_id"] = str(token_id)
        return await self._request("POST", f"/api/v1/agents/{agent_id}/publish/confirm", json=body)

    # --- Reviews ---

    async def prepare_reviews(self, agent_id: str, signer_address: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/v1/agents/{agent_id}/reviews/prepare",
            json={"signer_address": signer_address},
        )

    async def confirm_enable_reviews(self, agent_id: str, tx_hash: str, chain_id: int) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/v1/agents/{agent_id}/reviews/confirm",
            json={"tx_hash": tx_hash, "chain_id": chain_id},
        )

    async def confirm_review(self, review_id: str, tx_hash: str, chain_id: int) -> dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/api/v1/reviews/{review_id}/confirm",
            json={"tx_hash": tx_hash, "chain_id": chain_id},
        )

    # --- Confirmation status ---

    async def get_confirmations(self, agent_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/v1/agents/{agent_id}/confirmations")
