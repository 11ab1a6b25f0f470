"""OAuth-authorized Google API client shared by the Google adapters."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, cast

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from overview.config import Settings, get_settings
from overview.logging_utils import get_logger

log = get_logger(__name__)


# ---------- Shared Config ----------

@dataclass
class GoogleClientConfig:
    """
    Generic configuration for a Google discovery client.
    Adapters pick `api_name`, `api_version` and `scopes`.
    """
    scopes: Sequence[str]
    credentials_file: Path
    token_file: Path
    api_name: str
    api_version: str
    headless: bool
    local_server_port: int
    user_agent: str

    @classmethod
    def from_settings(
        cls,
        *,
        scopes: Sequence[str],
        api_name: str,
        api_version: str,
        config: Optional[Settings] = None,
    ) -> GoogleClientConfig:
        """Factory to create a config for any Google API from central settings."""
        cfg = config or get_settings()
        return cls(
            scopes=tuple(scopes),
            credentials_file=cfg.google.client_secrets_path,
            token_file=cfg.google.token_path,
            api_name=api_name,
            api_version=api_version,
            headless=bool(cfg.oauth_headless),
            local_server_port=int(cfg.oauth_port),
            user_agent=cfg.app_user_agent,
        )


# ---------- Base Client ----------

class GoogleClient:
    """
    Handles OAuth 2.0 authorization, token refresh, and lazy creation of the
    authenticated discovery service.
    """

    def __init__(self, config: GoogleClientConfig, *, service: Any = None) -> None:
        self.config = config
        self._service = service

    # ---------- Public API ----------

    def get_service(self) -> Any:
        """Return an authenticated discovery service. Lazily creates it."""
        if self._service is None:
            creds = self._get_credentials()
            try:
                self._service = build(
                    self.config.api_name,
                    self.config.api_version,
                    credentials=creds,
                    cache_discovery=False,
                )
            except HttpError:
                log.exception("google.client.service_build_failed")
                raise
            http = getattr(self._service, "_http", None)
            headers = getattr(http, "headers", None)
            if isinstance(headers, dict):
                headers["user-agent"] = self.config.user_agent
            log.info(
                "google.client.service_built",
                extra={
                    "api": self.config.api_name,
                    "version": self.config.api_version,
                    "scopes": list(self.config.scopes),
                },
            )
        return self._service

    # ---------- Internals ----------

    def _get_credentials(self) -> Credentials:
        """Load credentials from the token file, refresh if needed, or run the OAuth flow."""
        creds: Optional[Credentials] = None

        if self.config.token_file.exists():
            try:
                creds = Credentials.from_authorized_user_file(
                    str(self.config.token_file), list(self.config.scopes)
                )
            except (ValueError, OSError):
                log.warning(
                    "google.client.token_load_failed",
                    extra={"token_file": str(self.config.token_file)},
                )
                creds = None

        if creds and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
                self._persist_token(creds)
                log.info("google.client.token_refreshed")
                return creds
            except GoogleAuthError:
                log.warning("google.client.token_refresh_failed")
                creds = None

        if not creds or not creds.valid:
            if not self.config.credentials_file.exists():
                raise FileNotFoundError(
                    f"Client secrets not found at {self.config.credentials_file}. "
                    "Download OAuth client (Desktop) JSON and place it there."
                )

            flow = InstalledAppFlow.from_client_secrets_file(
                str(self.config.credentials_file), list(self.config.scopes)
            )
            log.info(
                "google.client.oauth_local_server_flow_started",
                extra={"port": self.config.local_server_port, "headless": self.config.headless},
            )
            creds = cast(
                Credentials,
                flow.run_local_server(
                    port=self.config.local_server_port,
                    open_browser=not self.config.headless,
                ),
            )
            self._persist_token(creds)
            log.info("google.client.token_obtained")

        return creds

    def _persist_token(self, creds: Credentials) -> None:
        """Persist refreshed/new credentials to the token file (owner-readable only)."""
        self.config.token_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "token": creds.token,
            "refresh_token": getattr(creds, "refresh_token", None),
            "token_uri": getattr(creds, "token_uri", None),
            "client_id": getattr(creds, "client_id", None),
            "client_secret": getattr(creds, "client_secret", None),
            "scopes": list(creds.scopes or self.config.scopes),
        }
        with self.config.token_file.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        try:
            os.chmod(self.config.token_file, 0o600)
        except OSError:
            log.debug("google.client.token_chmod_failed", extra={"token_file": str(self.config.token_file)})
