"""GCP Secret Manager provider."""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

from .codecs import CODECS, SecretValue
from .errors import (
    CodecError,
    ProviderAuthError,
    ProviderConflict,
    ProviderError,
    ProviderNotFound,
    ProviderTransportError,
)
from .models import SecretMetadata

logger = logging.getLogger(__name__)

_AUTH_ERRORS = (
    gcp_exceptions.Unauthenticated,
    gcp_exceptions.PermissionDenied,
    auth_exceptions.GoogleAuthError,
)

_TRANSPORT_ERRORS = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.TooManyRequests,
    gcp_exceptions.InternalServerError,
    gcp_exceptions.RetryError,
)

# Values are stored as a JSON object; payloads written by other tools as raw
# dotenv text are still readable.
_PAYLOAD_DECODERS = (CODECS["json"], CODECS["dotenv"])


@contextmanager
def _provider_errors(secret_name: str) -> Iterator[None]:
    """Translate google client exceptions into provider errors."""
    try:
        yield
    except _AUTH_ERRORS as e:
        logger.error(f"GCP authentication failed for {secret_name}: {e}")
        raise ProviderAuthError(f"authentication failed: {e}") from e
    except _TRANSPORT_ERRORS as e:
        logger.warning(f"GCP request failed for {secret_name}: {e}")
        raise ProviderTransportError(f"secret manager unavailable: {e}") from e
    except gcp_exceptions.GoogleAPIError as e:
        logger.warning(f"GCP request failed for {secret_name}: {e}")
        raise ProviderError(f"secret manager request failed: {e}") from e


class GCPSecretProvider:
    """Secret provider backed by GCP Secret Manager."""

    def __init__(
        self,
        project_id: str,
        service_account_path: Optional[Path] = None,
        endpoint: Optional[str] = None,
        client: Optional[secretmanager.SecretManagerServiceClient] = None,
    ):
        self.project_id = project_id
        self.service_account_path = service_account_path
        self.endpoint = endpoint
        self._client = client

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            client_options = {"api_endpoint": self.endpoint} if self.endpoint else None
            if self.service_account_path:
                try:
                    self._client = secretmanager.SecretManagerServiceClient.from_service_account_file(
                        str(self.service_account_path), client_options=client_options
                    )
                except (OSError, ValueError) as e:
                    raise ProviderAuthError(
                        f"failed to load service account {self.service_account_path}: {e}"
                    ) from e
            else:
                self._client = secretmanager.SecretManagerServiceClient(client_options=client_options)
        return self._client

    def _secret_path(self, secret_name: str) -> str:
        return f"projects/{self.project_id}/secrets/{secret_name}"

    def exists(self, secret_name: str) -> bool:
        with _provider_errors(secret_name):
            try:
                self.client.get_secret(request={"name": self._secret_path(secret_name)})
            except gcp_exceptions.NotFound:
                return False
        return True

    def fetch(self, secret_name: str) -> SecretValue:
        """
        Fetch the latest version of a secret.

        Args:
            secret_name: Name of the secret

        Returns:
            Decoded key-value mapping

        Raises:
            ProviderNotFound: If the secret or its latest version does not exist
            ProviderError: If the payload is not key-value data
        """
        name = f"{self._secret_path(secret_name)}/versions/latest"
        with _provider_errors(secret_name):
            try:
                response = self.client.access_secret_version(request={"name": name})
            except gcp_exceptions.NotFound as e:
                raise ProviderNotFound(f"secret '{secret_name}' not found") from e

        return self._decode_payload(secret_name, response.payload.data)

    def create(self, secret_name: str, value: SecretValue, metadata: Optional[SecretMetadata] = None) -> None:
        secret = {"replication": {"automatic": {}}}
        if metadata is not None:
            if metadata.tags:
                secret["labels"] = dict(metadata.tags)
            if metadata.description:
                secret["annotations"] = {"description": metadata.description}

        with _provider_errors(secret_name):
            try:
                self.client.create_secret(
                    request={
                        "parent": f"projects/{self.project_id}",
                        "secret_id": secret_name,
                        "secret": secret,
                    }
                )
            except gcp_exceptions.AlreadyExists as e:
                raise ProviderConflict(f"secret '{secret_name}' already exists") from e
            logger.info(f"Created secret {secret_name}")
            self._add_version(secret_name, value)

    def update(self, secret_name: str, value: SecretValue) -> None:
        with _provider_errors(secret_name):
            try:
                self._add_version(secret_name, value)
            except gcp_exceptions.NotFound as e:
                raise ProviderNotFound(f"secret '{secret_name}' not found") from e

    def _add_version(self, secret_name: str, value: SecretValue) -> None:
        self.client.add_secret_version(
            request={
                "parent": self._secret_path(secret_name),
                "payload": {"data": CODECS["json"].encode(value)},
            }
        )
        logger.debug(f"Added new version to secret {secret_name}")

    def _decode_payload(self, secret_name: str, data: bytes) -> SecretValue:
        errors = []
        for codec in _PAYLOAD_DECODERS:
            try:
                return codec.decode(data)
            except CodecError as e:
                errors.append(f"{codec.name}: {e}")
        raise ProviderError(f"secret '{secret_name}' does not hold key-value data ({'; '.join(errors)})")
