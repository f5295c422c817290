"""Backend endpoint configuration."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class BackendConfig(BaseModel):
    """Endpoints of the application backend.

    Attributes:
        credential_url: GET endpoint returning ``{"value": "<ephemeral key>"}``.
        catalogue_url: POST endpoint returning the tool catalogue for a topic.
        gateway_url: POST endpoint executing a single tool call.
        timeout: HTTP timeout in seconds for credential and catalogue calls.
        headers: Extra headers sent with every request.
    """

    credential_url: str
    catalogue_url: str
    gateway_url: str
    timeout: float = 15.0
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("credential_url", "catalogue_url", "gateway_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"expected an http(s) URL, got {v!r}")
        return v
