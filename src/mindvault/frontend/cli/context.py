"""Small helper to build a MindVault app context for the TUI."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mindvault.config import VaultConfig, load_config
from mindvault.core.decryption import DecryptionOrchestrator, FixedDelay
from mindvault.core.exceptions import VaultError
from mindvault.core.notifications import ErrorChannel
from mindvault.core.storage import BlobStore, LocalBlobStore
from mindvault.network.github import GitHubBlobStore
from mindvault.security.session import StoreFactory, VaultSession


@dataclass
class AppContext:
    """Container for runtime objects the UI needs."""

    config: VaultConfig
    session: VaultSession
    orchestrator: DecryptionOrchestrator
    store_factory: StoreFactory


def open_store(config: VaultConfig, token: Optional[str] = None) -> BlobStore:
    """Build the configured backend, authenticated with ``token`` if given."""
    if config.backend == "local":
        return LocalBlobStore(config.local_root)
    return GitHubBlobStore(
        config.owner,
        config.repo,
        token=token,
        api_url=config.api_url,
        branch=config.branch,
    )


def build_context(
    config_path: Optional[str | Path] = None,
    config: Optional[VaultConfig] = None,
) -> AppContext:
    """
    Load the descriptor, open an anonymous store and fetch the vault index.

    A broken descriptor raises ConfigurationError (fatal). A failing index
    fetch is reported on the session's error channel and leaves an empty
    session so the UI can still start.
    """
    config = config or load_config(config_path)
    session = VaultSession(
        store=open_store(config),
        errors=ErrorChannel(ttl=config.error_ttl),
        commit_attempts=config.commit_attempts,
    )
    pacing = FixedDelay(config.unlock_delay) if config.unlock_delay > 0 else None
    orchestrator = DecryptionOrchestrator(pacing=pacing)

    try:
        session.load_index()
    except VaultError as exc:
        session.errors.report(exc, "Failed to fetch vault")

    return AppContext(
        config=config,
        session=session,
        orchestrator=orchestrator,
        store_factory=lambda token: open_store(config, token),
    )
