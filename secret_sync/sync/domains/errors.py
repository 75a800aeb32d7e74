"""Exception hierarchy for secret-sync.

Errors fall into three scopes:

- Config errors are fatal and raised before any entry is processed.
- Codec and local file errors only fail the entry they occurred in.
- Provider errors are entry-scoped, except ProviderAuthError which aborts the run.
"""
from typing import Optional


class SecretSyncError(Exception):
    """Base class for all secret-sync errors."""
    pass


class ConfigError(SecretSyncError):
    """Configuration error exception."""
    pass


class ConfigNotFound(ConfigError):
    """No manifest could be located."""
    pass


class ConfigParseError(ConfigError):
    """Manifest exists but is unreadable or invalid."""
    pass


class CodecError(SecretSyncError):
    """Local file content could not be decoded or encoded."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class DuplicateKeyError(CodecError):
    """The same key appears more than once in one file."""

    def __init__(self, key: str, line: Optional[int] = None):
        self.key = key
        super().__init__(f"duplicate key '{key}'", line)


class MalformedLineError(CodecError):
    """A line is not a comment, blank, or KEY=VALUE pair."""
    pass


class LocalFileError(SecretSyncError):
    """Base for local filesystem failures."""
    pass


class FileReadError(LocalFileError):
    pass


class FileWriteError(LocalFileError):
    pass


class ProviderError(SecretSyncError):
    """Remote secret manager call failed."""
    pass


class ProviderAuthError(ProviderError):
    """Credentials are missing, invalid or lack permission."""
    pass


class ProviderTransportError(ProviderError):
    """Transient network or service availability failure."""
    pass


class ProviderNotFound(ProviderError):
    """The requested secret does not exist."""
    pass


class ProviderConflict(ProviderError):
    """The secret already exists and cannot be created again."""
    pass
