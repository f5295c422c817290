"""Application backend endpoints over HTTP."""

from canvaskit.providers.http.client import BackendClient
from canvaskit.providers.http.config import BackendConfig

__all__ = ["BackendClient", "BackendConfig"]
