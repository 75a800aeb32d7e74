"""Domain models for secret synchronization."""
import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .codecs import DotenvCodec, SecretCodec


@dataclass(frozen=True)
class SecretMetadata:
    """Metadata attached to a secret on first creation only."""
    description: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.description and not self.tags


@dataclass(frozen=True)
class FileEntry:
    """One declared local file to remote secret mapping."""
    key: str
    path: Path
    secret_name: str
    metadata: SecretMetadata = field(default_factory=SecretMetadata)
    codec: SecretCodec = field(default_factory=DotenvCodec, compare=False)


@dataclass(frozen=True)
class ProviderConfig:
    """Provider selection plus connection overrides."""
    provider: str = "gcp"
    project_id: Optional[str] = None
    service_account_path: Optional[Path] = None
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class Manifest:
    """Resolved configuration for one invocation."""
    path: Optional[Path]
    provider_config: ProviderConfig
    entries: Tuple[FileEntry, ...] = ()

    def select(self, keys: Optional[Sequence[str]] = None, globs: Optional[Sequence[str]] = None) -> List[FileEntry]:
        """
        Return entries matching any of ``keys`` or any shell-style pattern in ``globs``.

        With neither filter given every entry is returned. Manifest order is kept.
        """
        if not keys and not globs:
            return list(self.entries)

        wanted = set(keys or ())
        patterns = list(globs or ())
        return [
            entry for entry in self.entries
            if entry.key in wanted or any(fnmatch.fnmatchcase(entry.key, pattern) for pattern in patterns)
        ]


class SyncStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of processing one entry."""
    entry_key: str
    secret_name: str
    path: Path
    status: SyncStatus
    reason: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status is SyncStatus.FAILED

    @property
    def changed(self) -> bool:
        return self.status in (SyncStatus.CREATED, SyncStatus.UPDATED)

    @classmethod
    def for_entry(cls, entry: FileEntry, status: SyncStatus, reason: Optional[str] = None) -> "SyncOutcome":
        return cls(
            entry_key=entry.key,
            secret_name=entry.secret_name,
            path=entry.path,
            status=status,
            reason=reason,
        )


@dataclass
class SyncReport:
    """Outcomes of one pull or push run, in manifest order."""
    operation: str
    dry_run: bool = False
    outcomes: List[SyncOutcome] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(outcome.failed for outcome in self.outcomes)

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in SyncStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts
