"""Static vault descriptor, loaded once at startup.

Example ``mindvault.yaml``::

    owner: octo
    repo: my-vault
    # optional
    backend: github        # or "local"
    branch: main
    commit_attempts: 3
    unlock_delay: 0.3
    error_ttl: 5

A missing or incomplete descriptor is fatal: :class:`ConfigurationError` is
raised and nothing retries it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from mindvault.core.exceptions import ConfigurationError
from mindvault.core.index import DEFAULT_COMMIT_ATTEMPTS
from mindvault.core.notifications import DEFAULT_ERROR_TTL
from mindvault.network.github import DEFAULT_API_URL

logger = logging.getLogger(__name__)

CONFIG_ENV = "MINDVAULT_CONFIG"
DEFAULT_CONFIG_PATH = "mindvault.yaml"
BACKENDS = ("github", "local")


@dataclass(frozen=True)
class VaultConfig:
    owner: str = ""
    repo: str = ""
    backend: str = "github"
    local_root: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    branch: Optional[str] = None
    commit_attempts: int = DEFAULT_COMMIT_ATTEMPTS
    unlock_delay: float = 0.0
    error_ttl: float = DEFAULT_ERROR_TTL

    @property
    def label(self) -> str:
        if self.backend == "local":
            return str(self.local_root)
        return f"{self.owner}/{self.repo}"


def _number(data: dict, key: str, default, kind):
    value = data.get(key, default)
    try:
        value = kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}") from exc
    if value < 0:
        raise ConfigurationError(f"'{key}' must not be negative")
    return value


def parse_config(data) -> VaultConfig:
    """Validate a descriptor mapping and build the config."""
    if not isinstance(data, dict):
        raise ConfigurationError("vault descriptor must be a mapping")

    backend = str(data.get("backend", "github")).lower()
    if backend not in BACKENDS:
        raise ConfigurationError(f"unknown backend {backend!r} (expected one of {', '.join(BACKENDS)})")

    owner = str(data.get("owner") or "").strip()
    repo = str(data.get("repo") or "").strip()
    local_root = data.get("local_root")
    if backend == "github" and not (owner and repo):
        raise ConfigurationError("descriptor must contain owner and repo fields")
    if backend == "local" and not local_root:
        raise ConfigurationError("local backend needs a local_root directory")

    attempts = _number(data, "commit_attempts", DEFAULT_COMMIT_ATTEMPTS, int)
    if attempts < 1:
        raise ConfigurationError("'commit_attempts' must be at least 1")

    return VaultConfig(
        owner=owner,
        repo=repo,
        backend=backend,
        local_root=str(Path(local_root).expanduser()) if local_root else None,
        api_url=str(data.get("api_url") or DEFAULT_API_URL),
        branch=data.get("branch") or None,
        commit_attempts=attempts,
        unlock_delay=_number(data, "unlock_delay", 0.0, float),
        error_ttl=_number(data, "error_ttl", DEFAULT_ERROR_TTL, float),
    )


def load_config(path: Optional[str | Path] = None) -> VaultConfig:
    """
    Read the descriptor from ``path``, ``$MINDVAULT_CONFIG`` or
    ``./mindvault.yaml`` in that order.
    """
    config_path = Path(path or os.getenv(CONFIG_ENV) or DEFAULT_CONFIG_PATH).expanduser()
    if not config_path.exists():
        raise ConfigurationError(f"vault descriptor not found: {config_path}")
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"could not read {config_path}: {exc}") from exc
    config = parse_config(data)
    logger.info("vault configured: %s (%s)", config.label, config.backend)
    return config
