"""Manifest discovery and loading for secret-sync."""
import json
import logging
import os
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .codecs import CODECS, codec_for_path
from .errors import ConfigError, ConfigNotFound, ConfigParseError
from .models import FileEntry, Manifest, ProviderConfig, SecretMetadata

logger = logging.getLogger(__name__)

# Checked in this order within each directory
CONFIG_FILE_NAMES = (
    "secret-sync.toml",
    "secret-sync.json",
    "secret-sync.yaml",
    "secret-sync.yml",
)


def discover_config_path(start: Optional[Path] = None) -> Path:
    """
    Find the nearest manifest, checking ``start`` then each parent directory.

    Args:
        start: Directory to start from (defaults to the current directory)

    Returns:
        Absolute path to the manifest

    Raises:
        ConfigError: If a manifest name is taken by a directory
        ConfigNotFound: If no manifest exists up to the filesystem root
    """
    directory = Path(start or Path.cwd()).absolute()

    for candidate_dir in (directory, *directory.parents):
        for name in CONFIG_FILE_NAMES:
            candidate = candidate_dir / name
            if candidate.is_dir():
                raise ConfigError(f"Expected {name} to be a file but found a directory: {candidate}")
            if candidate.exists():
                logger.debug(f"Found manifest at {candidate}")
                return candidate

    raise ConfigNotFound(
        f"Could not find {CONFIG_FILE_NAMES[0]} in {directory} or any parent directory.\n"
        f"Create one there or pass --config /path/to/{CONFIG_FILE_NAMES[0]}"
    )


def _parse_document(config_path: Path, raw: bytes) -> Any:
    suffix = config_path.suffix.lower()

    if suffix in ("", ".toml"):
        try:
            return tomllib.loads(raw.decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
            raise ConfigParseError(f"Failed to parse TOML config at {config_path}: {e}")

    if suffix == ".json":
        def no_duplicates(pairs):
            result = {}
            for key, value in pairs:
                if key in result:
                    raise ConfigParseError(f"Duplicate key '{key}' in config at {config_path}")
                result[key] = value
            return result

        try:
            return json.loads(raw.decode("utf-8"), object_pairs_hook=no_duplicates)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigParseError(f"Failed to parse JSON config at {config_path}: {e}")

    if suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigParseError(f"Failed to parse YAML config at {config_path}: {e}")

    raise ConfigParseError(f"Unsupported config file extension '{suffix}' for {config_path}")


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigParseError(f"'{name}' section must be a table/mapping")
    return section


def _optional_str(section: Dict[str, Any], key: str, where: str) -> Optional[str]:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigParseError(f"'{where}.{key}' must be a non-empty string")
    return value


def _resolve(base_dir: Path, path: str) -> Path:
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return candidate
    return base_dir / candidate


def _load_provider_config(config: Dict[str, Any], base_dir: Path) -> ProviderConfig:
    backend = _section(config, "backend")
    gcp = _section(config, "gcp")

    provider = backend.get("provider", "gcp")
    if not isinstance(provider, str):
        raise ConfigParseError("'backend.provider' must be a string")

    service_account_path = None
    if "authentication" in config:
        auth = _section(config, "authentication")

        if "type" not in auth:
            raise ConfigParseError("Missing 'authentication.type' in config")

        if auth["type"] != "service_account":
            raise ConfigParseError(
                f"Unsupported authentication type: {auth['type']}\n"
                f"Only 'service_account' is supported."
            )

        if "service_account_path" not in auth:
            raise ConfigParseError(
                "Missing 'authentication.service_account_path' in config\n"
                "Please specify the path to your service account JSON file."
            )

        service_account_path = _resolve(base_dir, str(auth["service_account_path"]))

        if not service_account_path.exists():
            raise ConfigParseError(
                f"Service account file not found at: {service_account_path}\n"
                f"Please ensure the file exists or update the path in the manifest"
            )

        if not service_account_path.is_file():
            raise ConfigParseError(f"Service account path is not a file: {service_account_path}")

    return ProviderConfig(
        provider=provider.lower(),
        project_id=_optional_str(gcp, "project_id", "gcp"),
        service_account_path=service_account_path,
        endpoint=_optional_str(gcp, "endpoint", "gcp"),
    )


def _load_metadata(key: str, raw: Any) -> SecretMetadata:
    if raw is None:
        return SecretMetadata()
    if not isinstance(raw, dict):
        raise ConfigParseError(f"'files.{key}.metadata' must be a table/mapping")

    description = _optional_str(raw, "description", f"files.{key}.metadata")

    tags = raw.get("tags") or {}
    if not isinstance(tags, dict) or not all(
        isinstance(name, str) and isinstance(value, str) for name, value in tags.items()
    ):
        raise ConfigParseError(f"'files.{key}.metadata.tags' must map strings to strings")

    return SecretMetadata(description=description, tags=dict(tags))


def _load_entries(config: Dict[str, Any], base_dir: Path) -> List[FileEntry]:
    files = _section(config, "files")

    entries = []
    for key, raw in files.items():
        where = f"files.{key}"
        if not isinstance(raw, dict):
            raise ConfigParseError(f"'{where}' must be a table/mapping")

        path = raw.get("path")
        secret = raw.get("secret")
        if not isinstance(path, str) or not path:
            raise ConfigParseError(f"Missing 'path' for '{where}'")
        if not isinstance(secret, str) or not secret:
            raise ConfigParseError(f"Missing 'secret' for '{where}'")

        file_format = _optional_str(raw, "format", where)
        if file_format is not None and file_format not in CODECS:
            raise ConfigParseError(
                f"Unsupported format '{file_format}' for '{where}'. "
                f"Supported formats: {', '.join(sorted(CODECS))}"
            )

        resolved = _resolve(base_dir, path)
        entries.append(
            FileEntry(
                key=str(key),
                path=resolved,
                secret_name=secret,
                metadata=_load_metadata(key, raw.get("metadata")),
                codec=codec_for_path(resolved, file_format),
            )
        )

    return entries


def load_manifest(config_path: Path, project_id: Optional[str] = None) -> Manifest:
    """
    Load and validate a manifest file.

    Entry paths and the service account path are resolved relative to the
    manifest's directory. The project ID comes from ``project_id`` if given,
    then the GCP_PROJECT environment variable, then ``gcp.project_id``.

    Args:
        config_path: Path to the manifest
        project_id: Explicit project override (e.g. from the command line)

    Returns:
        The immutable Manifest

    Raises:
        ConfigNotFound: If the file does not exist
        ConfigParseError: If the file cannot be read, parsed or validated
    """
    config_path = Path(config_path).absolute()

    if not config_path.exists():
        raise ConfigNotFound(f"Configuration file not found at: {config_path}")

    try:
        raw = config_path.read_bytes()
    except OSError as e:
        raise ConfigParseError(f"Failed to read config file at {config_path}: {e}")

    config = _parse_document(config_path, raw)
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigParseError(f"Config file at {config_path} must contain a table/mapping")

    base_dir = config_path.parent
    provider_config = _apply_project_override(_load_provider_config(config, base_dir), project_id)
    entries = _load_entries(config, base_dir)

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Declared {len(entries)} secret file(s)")

    return Manifest(path=config_path, provider_config=provider_config, entries=tuple(entries))


def default_manifest(project_id: Optional[str] = None) -> Manifest:
    """Manifest with no entries, used by quick commands when no config exists."""
    return Manifest(path=None, provider_config=_apply_project_override(ProviderConfig(), project_id))


def _apply_project_override(provider_config: ProviderConfig, project_id: Optional[str]) -> ProviderConfig:
    override = project_id or os.getenv("GCP_PROJECT")
    if not override:
        return provider_config

    logger.debug(f"Using project ID override: {override}")
    return replace(provider_config, project_id=override)
