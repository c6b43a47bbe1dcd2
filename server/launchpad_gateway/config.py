"""Environment-based configuration for the Launchpad Gateway."""

from __future__ import annotations

import os
import secrets


class GatewayConfig:
    """Gateway configuration loaded from environment variables."""

    def __init__(self) -> None:
        self.host = os.environ.get("LAUNCHPAD_GATEWAY_HOST", "0.0.0.0")
        self.port = int(os.environ.get("LAUNCHPAD_GATEWAY_PORT", "8080"))

        # Customer-facing portal; job actions must originate from it
        self.launchpad_url = os.environ.get("LAUNCHPAD_URL", "http://localhost:3000").rstrip("/")

        # External record store (empty URL -> in-process memory store)
        self.record_store_url = os.environ.get("RECORD_STORE_URL", "").rstrip("/")
        self.record_store_token = os.environ.get("RECORD_STORE_TOKEN", "")
        self.store_timeout = float(os.environ.get("RECORD_STORE_TIMEOUT", "10"))

        # Notification relay (empty URL -> log-only notifier)
        self.notifier_url = os.environ.get("NOTIFIER_URL", "").rstrip("/")
        self.notifier_timeout = float(os.environ.get("NOTIFIER_TIMEOUT", "10"))

        # Job defaults
        self.default_valid_minutes = int(os.environ.get("JOB_VALID_UNTIL_MINUTES", "1440"))

        # Bearer token for back-office calls (create / cancel)
        self.api_key = os.environ.get("LAUNCHPAD_API_KEY") or secrets.token_urlsafe(32)

        # CORS origins (comma-separated)
        origins = os.environ.get("LAUNCHPAD_CORS_ORIGINS", "")
        self.cors_origins: list[str] = [o.strip() for o in origins.split(",") if o.strip()] if origins else ["*"]

    @property
    def uses_memory_store(self) -> bool:
        return not self.record_store_url


# Singleton
config = GatewayConfig()
