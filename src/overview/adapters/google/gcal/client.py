"""Google Calendar API client wrapper built on `GoogleClient`."""

from __future__ import annotations

from typing import Any, Optional

from overview.adapters.google.base_client import GoogleClient, GoogleClientConfig
from overview.config import Settings, get_settings


class GCalClient(GoogleClient):
    """Read-only Google Calendar API client."""

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> GCalClient:
        """Build a `GCalClient` using configured Calendar API settings."""
        cfg = config or get_settings()
        client_config = GoogleClientConfig.from_settings(
            scopes=tuple(cfg.gcal_scopes),
            api_name="calendar",
            api_version=cfg.gcal_api_version,
            config=cfg,
        )
        return cls(client_config)

    @classmethod
    def for_service(cls, service: Any, config: Optional[Settings] = None) -> GCalClient:
        """Wrap an already-built discovery service (tests, shared sessions)."""
        client = cls.from_settings(config)
        client._service = service
        return client
