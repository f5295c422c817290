"""HTTP client for the credential and tool-catalogue endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from canvaskit.errors import NegotiationError
from canvaskit.models.tool_call import ToolCatalogue
from canvaskit.providers.http.config import BackendConfig

logger = logging.getLogger("canvaskit.providers.http.client")


class BackendClient:
    """Fetches the negotiation prerequisites from the application backend.

    Every failure is reported as :class:`~canvaskit.errors.NegotiationError`
    because neither the credential nor the catalogue is optional.

    Example:
        client = BackendClient(BackendConfig(credential_url=..., catalogue_url=..., gateway_url=...))
        credential = await client.fetch_credential()
        catalogue = await client.fetch_catalogue("photosynthesis")
    """

    def __init__(self, config: BackendConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def fetch_credential(self) -> str:
        data = await self._request("GET", self._config.credential_url, what="credential")
        value = data.get("value")
        if not isinstance(value, str) or not value:
            raise NegotiationError("Credential endpoint returned no value")
        return value

    async def fetch_catalogue(self, topic: str | None = None) -> ToolCatalogue:
        data = await self._request(
            "POST", self._config.catalogue_url, what="tool catalogue", json={"topic": topic}
        )
        try:
            catalogue = ToolCatalogue.model_validate(data)
        except ValidationError as exc:
            raise NegotiationError(f"Malformed tool catalogue: {exc}") from exc
        logger.info(
            "Loaded %d tools for topic %s: %s",
            len(catalogue.tools),
            catalogue.topic or topic,
            ", ".join(catalogue.tool_names),
        )
        return catalogue

    async def _request(
        self, method: str, url: str, *, what: str, json: Any = None
    ) -> dict[str, Any]:
        try:
            resp = await self._client.request(
                method, url, json=json, headers=self._config.headers or None
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise NegotiationError(f"Timed out fetching {what}") from exc
        except httpx.HTTPStatusError as exc:
            raise NegotiationError(
                f"Failed to fetch {what}: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise NegotiationError(f"Failed to fetch {what}: {exc}") from exc
        except ValueError as exc:
            raise NegotiationError(f"Invalid JSON from {what} endpoint") from exc
        if not isinstance(data, dict):
            raise NegotiationError(f"Unexpected {what} response shape")
        return data

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
