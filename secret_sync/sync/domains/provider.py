"""Remote secret store capability."""
import logging
from typing import Optional, Protocol, runtime_checkable

from .codecs import SecretValue
from .errors import ConfigError
from .models import ProviderConfig, SecretMetadata

logger = logging.getLogger(__name__)


@runtime_checkable
class SecretProvider(Protocol):
    """Capabilities every secret backend implements.

    All methods may raise ProviderAuthError or ProviderTransportError.
    Metadata is only ever sent through ``create``.
    """

    def exists(self, secret_name: str) -> bool:
        ...

    def fetch(self, secret_name: str) -> SecretValue:
        """Raises ProviderNotFound if the secret or its value is absent."""
        ...

    def create(self, secret_name: str, value: SecretValue, metadata: Optional[SecretMetadata] = None) -> None:
        """Raises ProviderConflict if the secret already exists."""
        ...

    def update(self, secret_name: str, value: SecretValue) -> None:
        """Raises ProviderNotFound if the secret no longer exists."""
        ...


def build_provider(config: ProviderConfig) -> SecretProvider:
    """
    Create the provider selected by ``config``.

    Raises:
        ConfigError: If the provider is unknown or missing required settings
    """
    if config.provider == "gcp":
        from .gcp_client import GCPSecretProvider

        if not config.project_id:
            raise ConfigError(
                "Project ID not found. Please set GCP_PROJECT environment variable, "
                "pass --project-id or configure gcp.project_id in the manifest"
            )
        logger.debug(f"Using GCP Secret Manager in project {config.project_id}")
        return GCPSecretProvider(
            project_id=config.project_id,
            service_account_path=config.service_account_path,
            endpoint=config.endpoint,
        )

    raise ConfigError(f"Unsupported provider: {config.provider}\nOnly 'gcp' is supported.")
