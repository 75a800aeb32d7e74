"""Test suite for manifest discovery and loading.

This test suite validates:
- Upward discovery of secret-sync manifests
- TOML, JSON and YAML manifests describe the same configuration
- Validation errors for malformed manifests
- Project ID overrides from the environment and command line
"""
import json

import pytest
import yaml

from secret_sync.sync.domains import config_loader
from secret_sync.sync.domains.errors import ConfigError, ConfigNotFound, ConfigParseError
from secret_sync.sync.domains.models import SecretMetadata

SAMPLE_TOML = """
[backend]
provider = "gcp"

[gcp]
project_id = "test-project"

[files.app]
path = ".env"
secret = "app-env"

[files.app.metadata]
description = "Application environment"
tags = { team = "platform" }

[files.worker]
path = "worker/secrets.json"
secret = "worker-secrets"

[files.legacy]
path = "legacy.json"
secret = "legacy"
format = "dotenv"
"""

SAMPLE_DICT = {
    "backend": {"provider": "gcp"},
    "gcp": {"project_id": "test-project"},
    "files": {
        "app": {
            "path": ".env",
            "secret": "app-env",
            "metadata": {"description": "Application environment", "tags": {"team": "platform"}},
        },
        "worker": {"path": "worker/secrets.json", "secret": "worker-secrets"},
        "legacy": {"path": "legacy.json", "secret": "legacy", "format": "dotenv"},
    },
}


@pytest.fixture(autouse=True)
def clear_project_env(monkeypatch):
    monkeypatch.delenv("GCP_PROJECT", raising=False)


@pytest.fixture
def manifest_file(tmp_path):
    path = tmp_path / "secret-sync.toml"
    path.write_text(SAMPLE_TOML)
    return path


class TestDiscovery:
    """Test suite for walking up from the working directory."""

    def test_finds_manifest_in_ancestor(self, tmp_path):
        """Test that /a/b/c discovers /a/secret-sync.toml."""
        manifest = tmp_path / "a" / "secret-sync.toml"
        start = tmp_path / "a" / "b" / "c"
        start.mkdir(parents=True)
        manifest.write_text("")

        assert config_loader.discover_config_path(start) == manifest

    def test_defaults_to_current_directory(self, tmp_path, monkeypatch):
        """Test that discovery starts from the working directory."""
        manifest = tmp_path / "secret-sync.toml"
        manifest.write_text("")
        nested = tmp_path / "nested"
        nested.mkdir()
        monkeypatch.chdir(nested)

        assert config_loader.discover_config_path() == manifest

    def test_nearest_manifest_wins(self, tmp_path):
        """Test that a closer manifest shadows one further up."""
        (tmp_path / "secret-sync.toml").write_text("")
        inner = tmp_path / "project" / "secret-sync.json"
        inner.parent.mkdir()
        inner.write_text("{}")

        assert config_loader.discover_config_path(inner.parent) == inner

    def test_yaml_manifest_is_discovered(self, tmp_path):
        manifest = tmp_path / "secret-sync.yml"
        manifest.write_text("files: {}\n")

        assert config_loader.discover_config_path(tmp_path) == manifest

    def test_raises_when_no_manifest_found(self, tmp_path):
        """Test that reaching the root without a manifest is ConfigNotFound."""
        start = tmp_path / "empty" / "tree"
        start.mkdir(parents=True)

        with pytest.raises(ConfigNotFound) as exc_info:
            config_loader.discover_config_path(start)

        assert "secret-sync.toml" in str(exc_info.value)

    def test_directory_with_manifest_name_raises(self, tmp_path):
        """Test that a directory named like a manifest is an error."""
        (tmp_path / "secret-sync.toml").mkdir()

        with pytest.raises(ConfigError) as exc_info:
            config_loader.discover_config_path(tmp_path)

        assert "directory" in str(exc_info.value)


class TestLoadManifest:
    """Test suite for parsing manifests into models."""

    def test_load_toml_manifest(self, manifest_file, tmp_path):
        """Test that entries, paths, metadata and codecs are resolved."""
        manifest = config_loader.load_manifest(manifest_file)

        assert manifest.path == manifest_file
        assert manifest.provider_config.provider == "gcp"
        assert manifest.provider_config.project_id == "test-project"
        assert [entry.key for entry in manifest.entries] == ["app", "worker", "legacy"]

        app, worker, legacy = manifest.entries
        assert app.path == tmp_path / ".env"
        assert app.secret_name == "app-env"
        assert app.metadata == SecretMetadata(description="Application environment", tags={"team": "platform"})
        assert app.codec.name == "dotenv"

        assert worker.path == tmp_path / "worker" / "secrets.json"
        assert worker.metadata == SecretMetadata()
        assert worker.codec.name == "json"

        assert legacy.codec.name == "dotenv"

    def test_absolute_entry_paths_are_kept(self, tmp_path):
        absolute = tmp_path / "elsewhere" / ".env"
        manifest_path = tmp_path / "conf" / "secret-sync.toml"
        manifest_path.parent.mkdir()
        manifest_path.write_text(f'[files.a]\npath = "{absolute.as_posix()}"\nsecret = "a"\n')

        manifest = config_loader.load_manifest(manifest_path)

        assert manifest.entries[0].path == absolute

    def test_json_and_yaml_match_toml(self, manifest_file, tmp_path):
        """Test that equivalent manifests in every format load identically."""
        json_path = tmp_path / "secret-sync.json"
        json_path.write_text(json.dumps(SAMPLE_DICT))
        yaml_path = tmp_path / "secret-sync.yaml"
        yaml_path.write_text(yaml.safe_dump(SAMPLE_DICT, sort_keys=False))

        from_toml = config_loader.load_manifest(manifest_file)
        for other in (json_path, yaml_path):
            loaded = config_loader.load_manifest(other)
            assert loaded.entries == from_toml.entries
            assert loaded.provider_config == from_toml.provider_config

    def test_file_without_extension_is_toml(self, tmp_path):
        path = tmp_path / "manifest"
        path.write_text('[files.a]\npath = ".env"\nsecret = "a"\n')

        assert config_loader.load_manifest(path).entries[0].secret_name == "a"

    def test_empty_manifest_has_no_entries(self, tmp_path):
        path = tmp_path / "secret-sync.yaml"
        path.write_text("")

        manifest = config_loader.load_manifest(path)

        assert manifest.entries == ()
        assert manifest.provider_config.provider == "gcp"

    def test_missing_file_raises_not_found(self, tmp_path):
        with pytest.raises(ConfigNotFound):
            config_loader.load_manifest(tmp_path / "missing.toml")

    def test_invalid_toml_raises_parse_error(self, tmp_path):
        path = tmp_path / "secret-sync.toml"
        path.write_text("[files.a\npath = ")

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "TOML" in str(exc_info.value)

    def test_invalid_yaml_raises_parse_error(self, tmp_path):
        path = tmp_path / "secret-sync.yml"
        path.write_text("invalid: yaml: content: [")

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "YAML" in str(exc_info.value)

    def test_duplicate_json_keys_rejected(self, tmp_path):
        """Test that entry keys must be unique in JSON manifests."""
        path = tmp_path / "secret-sync.json"
        path.write_text(
            '{"files": {"a": {"path": "1.env", "secret": "one"}, "a": {"path": "2.env", "secret": "two"}}}'
        )

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "Duplicate key 'a'" in str(exc_info.value)

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "secret-sync.ini"
        path.write_text("")

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "Unsupported config file extension" in str(exc_info.value)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "secret-sync.json"
        path.write_text("[]")

        with pytest.raises(ConfigParseError):
            config_loader.load_manifest(path)

    @pytest.mark.parametrize("entry, message", [
        ({"secret": "a"}, "Missing 'path'"),
        ({"path": ".env"}, "Missing 'secret'"),
        ({"path": ".env", "secret": "a", "format": "xml"}, "Unsupported format 'xml'"),
        ({"path": ".env", "secret": "a", "metadata": {"tags": {"team": 1}}}, "must map strings to strings"),
        ({"path": ".env", "secret": "a", "metadata": "oops"}, "must be a table/mapping"),
    ])
    def test_invalid_entries(self, tmp_path, entry, message):
        """Test that each malformed entry is reported clearly."""
        path = tmp_path / "secret-sync.json"
        path.write_text(json.dumps({"files": {"a": entry}}))

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert message in str(exc_info.value)


class TestAuthentication:
    """Test suite for the optional authentication section."""

    def test_service_account_path_resolved_relative_to_manifest(self, tmp_path):
        sa_file = tmp_path / "sa.json"
        sa_file.write_text(json.dumps({"type": "service_account"}))
        path = tmp_path / "secret-sync.toml"
        path.write_text('[authentication]\ntype = "service_account"\nservice_account_path = "sa.json"\n')

        manifest = config_loader.load_manifest(path)

        assert manifest.provider_config.service_account_path == sa_file

    def test_unsupported_auth_type(self, tmp_path):
        path = tmp_path / "secret-sync.toml"
        path.write_text('[authentication]\ntype = "oauth2"\nservice_account_path = "sa.json"\n')

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "Unsupported authentication type" in str(exc_info.value)

    def test_missing_service_account_file(self, tmp_path):
        path = tmp_path / "secret-sync.toml"
        path.write_text('[authentication]\ntype = "service_account"\nservice_account_path = "/nonexistent/sa.json"\n')

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "Service account file not found" in str(exc_info.value)

    def test_missing_service_account_path(self, tmp_path):
        path = tmp_path / "secret-sync.toml"
        path.write_text('[authentication]\ntype = "service_account"\n')

        with pytest.raises(ConfigParseError) as exc_info:
            config_loader.load_manifest(path)

        assert "service_account_path" in str(exc_info.value)


class TestProjectOverrides:
    """Test suite for project ID precedence."""

    def test_env_var_overrides_manifest(self, manifest_file, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "env-project")

        manifest = config_loader.load_manifest(manifest_file)

        assert manifest.provider_config.project_id == "env-project"

    def test_explicit_project_overrides_env(self, manifest_file, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "env-project")

        manifest = config_loader.load_manifest(manifest_file, project_id="cli-project")

        assert manifest.provider_config.project_id == "cli-project"

    def test_default_manifest_uses_env(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "env-project")

        manifest = config_loader.default_manifest()

        assert manifest.path is None
        assert manifest.entries == ()
        assert manifest.provider_config.project_id == "env-project"


class TestSelect:
    """Test suite for filtering entries by key."""

    def test_no_filter_returns_everything(self, manifest_file):
        manifest = config_loader.load_manifest(manifest_file)

        assert [entry.key for entry in manifest.select()] == ["app", "worker", "legacy"]

    def test_select_by_key_and_glob_keeps_manifest_order(self, manifest_file):
        manifest = config_loader.load_manifest(manifest_file)

        selected = manifest.select(keys=["legacy"], globs=["a*"])

        assert [entry.key for entry in selected] == ["app", "legacy"]

    def test_select_without_match_is_empty(self, manifest_file):
        manifest = config_loader.load_manifest(manifest_file)

        assert manifest.select(keys=["missing"]) == []
