"""Shared fixtures for secret-sync tests."""
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from tenacity import wait_none

from secret_sync.sync.domains.codecs import codec_for_path
from secret_sync.sync.domains.errors import ProviderConflict, ProviderNotFound
from secret_sync.sync.domains.models import FileEntry, SecretMetadata
from secret_sync.sync.workflows import sync_operations


class FakeProvider:
    """In-memory secret store that records every call.

    ``errors`` maps a method name to exceptions raised (in order) before the
    method does its normal work, e.g. ``{"fetch": [ProviderTransportError("x")]}``.
    """

    def __init__(self, secrets: Optional[Dict[str, Dict[str, str]]] = None):
        self.secrets = {name: dict(value) for name, value in (secrets or {}).items()}
        self.metadata: Dict[str, Optional[SecretMetadata]] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.calls: List[tuple] = []

    def _record(self, method: str, secret_name: str) -> None:
        self.calls.append((method, secret_name))
        pending = self.errors.get(method)
        if pending:
            raise pending.pop(0)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def exists(self, secret_name):
        self._record("exists", secret_name)
        return secret_name in self.secrets

    def fetch(self, secret_name):
        self._record("fetch", secret_name)
        if secret_name not in self.secrets:
            raise ProviderNotFound(f"secret '{secret_name}' not found")
        return dict(self.secrets[secret_name])

    def create(self, secret_name, value, metadata=None):
        self._record("create", secret_name)
        if secret_name in self.secrets:
            raise ProviderConflict(f"secret '{secret_name}' already exists")
        self.secrets[secret_name] = dict(value)
        self.metadata[secret_name] = metadata

    def update(self, secret_name, value):
        self._record("update", secret_name)
        if secret_name not in self.secrets:
            raise ProviderNotFound(f"secret '{secret_name}' not found")
        self.secrets[secret_name] = dict(value)


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    """Retry transport failures without sleeping."""
    monkeypatch.setattr(sync_operations, "RETRY_WAIT", wait_none())


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_entry(tmp_path):
    """Factory creating a FileEntry under tmp_path, optionally writing its file."""

    def _make_entry(key, content=None, filename=None, secret=None, metadata=None):
        path = tmp_path / (filename or f"{key}.env")
        if content is not None:
            path.write_bytes(content.encode("utf-8") if isinstance(content, str) else content)
        return FileEntry(
            key=key,
            path=Path(path),
            secret_name=secret or key,
            metadata=metadata or SecretMetadata(),
            codec=codec_for_path(path),
        )

    return _make_entry
