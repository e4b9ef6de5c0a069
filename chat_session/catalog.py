"""Model discovery and connectivity checks against the completion backend."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

import requests
from pydantic import BaseModel, ConfigDict

from .config import SessionConfig
from .payload import build_headers

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ModelEntry(BaseModel):
    """One entry of an OpenAI- or Ollama-style model listing.

    Backends disagree on field types (numeric ids, ISO ``created`` strings),
    so values are kept as sent and coerced only where they are read.
    """

    model_config = ConfigDict(extra="ignore")

    id: Any = None
    name: Any = None
    model: Any = None
    created: Any = None

    @property
    def identifier(self) -> str:
        for value in (self.id, self.name, self.model):
            if value:
                return str(value)
        return ""

    @property
    def created_at(self) -> float:
        """``created`` as epoch seconds; 0 when absent or unparseable."""
        value = self.created
        if value is None or isinstance(value, bool):
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            pass
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
            except ValueError:
                logger.debug("Unparseable model creation time: %r", value)
        return 0.0


def _listing_entries(data: Any) -> List[Any]:
    if not isinstance(data, dict):
        return []
    for key in ("models", "data"):
        entries = data.get(key)
        if isinstance(entries, list):
            return entries
    return []


def parse_model_listing(data: Any) -> List[str]:
    """Extract model identifiers, newest first when creation times are known."""
    entries = [
        ModelEntry.model_validate(raw) if isinstance(raw, dict) else ModelEntry()
        for raw in _listing_entries(data)
    ]
    if entries and entries[0].created is not None:
        entries.sort(key=lambda entry: entry.created_at, reverse=True)
    return [entry.identifier for entry in entries]


def fetch_models(
    config: SessionConfig,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[str]:
    """Return the identifiers served at ``config.models_url``, or ``[]`` on failure."""
    http = session or requests
    url = config.models_url
    try:
        response = http.get(url, headers=build_headers(config.api_key), timeout=timeout)
        response.raise_for_status()
        models = parse_model_listing(response.json())
    except (requests.RequestException, ValueError):
        logger.exception("Failed to fetch models from %s", url)
        return []
    logger.info("Discovered %d model(s) at %s", len(models), url)
    return models


def connection_test_url(base_url: str) -> str:
    url = base_url.rstrip("/")
    if url.endswith("/v1"):
        return f"{url}/models"
    return f"{url}/v1/models"


def check_connection(
    config: SessionConfig,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Tuple[bool, str]:
    """Query the backend's model listing and report ``(ok, message)``."""
    http = session or requests
    url = connection_test_url(config.base_url)
    headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else {}
    try:
        response = http.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("Connection check against %s failed: %s", url, exc)
        return False, str(exc)
    if not response.ok:
        return False, f"{response.status_code} {response.reason}"
    return True, "Connection successful!"
