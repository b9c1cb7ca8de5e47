"""API credential providers.

Two sources are supported behind one protocol:

- ``env_file``: a packaged ``.env``-style configuration file holding
  ``ANTHROPIC_API_KEY=...``.
- ``store``: a small JSON key store in the data directory. The key can
  be entered from the chat with ``/apikey`` and is saved here.

When no credential is available the agent asks the user for one instead
of calling the model.
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from dotenv import dotenv_values

from desktop_agent.config import Settings, settings

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Protocol that all credential sources must satisfy."""

    def get_credential(self) -> str | None:
        """Return the API key, or None when none is configured."""
        ...


class EnvFileCredentialProvider:
    """Reads the API key from a dotenv-style configuration file."""

    def __init__(self, path: Path, key: str = "ANTHROPIC_API_KEY") -> None:
        self.path = path
        self.key = key

    def get_credential(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            values = dotenv_values(self.path)
        except (OSError, UnicodeDecodeError):
            logger.exception("Failed to read credential file %s", self.path)
            return None
        value = (values.get(self.key) or "").strip()
        return value or None


class StoredCredentialProvider:
    """Reads and writes the API key in a local JSON key store."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get_credential(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read credential store %s", self.path)
            return None
        if not isinstance(data, dict):
            return None
        value = str(data.get("api_key") or "").strip()
        return value or None

    def save_credential(self, api_key: str) -> None:
        """Persist ``api_key``, replacing any stored value."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"api_key": api_key.strip()}), encoding="utf-8")
        logger.info("Stored API key in %s", self.path)


def get_credential_provider(config: Settings | None = None) -> CredentialProvider:
    """Build the provider selected by ``credential_source``."""
    config = config or settings
    if config.credential_source == "store":
        return StoredCredentialProvider(config.credential_store_path)
    if config.credential_source != "env_file":
        logger.warning(
            "Unknown credential_source %r, falling back to env_file",
            config.credential_source,
        )
    return EnvFileCredentialProvider(config.credential_env_file, config.credential_env_key)
