"""
Storage capability for the target Secret.

The materializer only needs three calls (get, create, patch), so the
cluster sits behind the small SecretStore protocol. KubernetesSecretStore
is the real implementation on top of the official kubernetes client;
tests use an in-memory store instead.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .errors import (
    ConfigValidationError,
    DeadlineExceededError,
    SecretConflictError,
    SecretWriteError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretKey:
    """Identity of a Secret in the cluster."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class SecretDocument:
    """
    The parts of a Kubernetes Secret this tool reads and writes.

    Attributes:
        name: Secret name
        namespace: Secret namespace
        labels: metadata.labels
        string_data: Plain-text values pending write (stringData)
        data: Base64-encoded values as stored by the API server
        resource_version: metadata.resourceVersion, used for conflict detection
    """

    name: str
    namespace: str
    labels: Dict[str, str] = field(default_factory=dict)
    string_data: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, str] = field(default_factory=dict)
    resource_version: Optional[str] = None

    @property
    def key(self) -> SecretKey:
        return SecretKey(namespace=self.namespace, name=self.name)

    def decoded_values(self) -> Dict[str, Optional[str]]:
        """All values in plain text, with stringData taking precedence over data."""
        values = {}
        for name, encoded in self.data.items():
            try:
                values[name] = base64.b64decode(encoded).decode("utf-8")
            except (ValueError, UnicodeDecodeError):
                # Binary values can never equal a token string
                values[name] = None
        values.update(self.string_data)
        return values


class SecretStore(Protocol):
    def get(self, key: SecretKey, timeout: Optional[float] = None) -> Optional[SecretDocument]:
        """Return the Secret, or None if it does not exist."""
        ...

    def create(self, document: SecretDocument, timeout: Optional[float] = None) -> SecretDocument:
        """Create the Secret; raise SecretConflictError if it already exists."""
        ...

    def patch(
        self,
        key: SecretKey,
        labels: Dict[str, str],
        string_data: Dict[str, str],
        resource_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SecretDocument:
        """Merge labels and stringData into the Secret, leaving other keys alone."""
        ...


def load_kube_client() -> client.CoreV1Api:
    """
    Build a CoreV1Api client, preferring in-cluster configuration.

    Raises:
        ConfigValidationError: If neither in-cluster config nor a
                               kubeconfig file is available.
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes config")
    except ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded local kubeconfig")
        except (ConfigException, OSError) as e:
            raise ConfigValidationError(
                f"failed to configure kubernetes client: {e}"
            ) from e
    return client.CoreV1Api()


class KubernetesSecretStore:
    """SecretStore backed by the Kubernetes core/v1 API."""

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def get(self, key: SecretKey, timeout: Optional[float] = None) -> Optional[SecretDocument]:
        try:
            secret = self.api.read_namespaced_secret(
                key.name, key.namespace, **self._timeout_kwargs(timeout)
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise self._translate(e, "read", key) from e
        except urllib3.exceptions.HTTPError as e:
            raise self._translate_transport(e, "read", key) from e
        return self._to_document(secret)

    def create(self, document: SecretDocument, timeout: Optional[float] = None) -> SecretDocument:
        body = client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=client.V1ObjectMeta(
                name=document.name,
                namespace=document.namespace,
                labels=dict(document.labels) or None,
            ),
            type="Opaque",
            string_data=dict(document.string_data),
        )
        try:
            secret = self.api.create_namespaced_secret(
                document.namespace, body, **self._timeout_kwargs(timeout)
            )
        except ApiException as e:
            raise self._translate(e, "create", document.key) from e
        except urllib3.exceptions.HTTPError as e:
            raise self._translate_transport(e, "create", document.key) from e
        return self._to_document(secret)

    def patch(
        self,
        key: SecretKey,
        labels: Dict[str, str],
        string_data: Dict[str, str],
        resource_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SecretDocument:
        metadata = {}
        if labels:
            metadata["labels"] = dict(labels)
        if resource_version:
            # API server answers 409 if the Secret moved on since we read it
            metadata["resourceVersion"] = resource_version
        body = {"stringData": dict(string_data)}
        if metadata:
            body["metadata"] = metadata

        try:
            secret = self.api.patch_namespaced_secret(
                key.name, key.namespace, body, **self._timeout_kwargs(timeout)
            )
        except ApiException as e:
            raise self._translate(e, "patch", key) from e
        except urllib3.exceptions.HTTPError as e:
            raise self._translate_transport(e, "patch", key) from e
        return self._to_document(secret)

    @staticmethod
    def _timeout_kwargs(timeout: Optional[float]) -> dict:
        if timeout is None:
            return {}
        return {"_request_timeout": timeout}

    @staticmethod
    def _translate(error: ApiException, verb: str, key: SecretKey) -> SecretWriteError:
        reason = error.reason or ""
        if error.body:
            reason = f"{reason}: {error.body}" if reason else str(error.body)
        message = f"failed to {verb} Secret {key} ({error.status}): {reason}"
        if error.status == 409:
            return SecretConflictError(message)
        return SecretWriteError(message)

    @staticmethod
    def _translate_transport(error: urllib3.exceptions.HTTPError, verb: str, key: SecretKey):
        cause = error
        if isinstance(error, urllib3.exceptions.MaxRetryError) and error.reason is not None:
            cause = error.reason
        # NewConnectionError subclasses ConnectTimeoutError but means refused/unreachable
        if isinstance(cause, urllib3.exceptions.TimeoutError) and not isinstance(
            cause, urllib3.exceptions.NewConnectionError
        ):
            return DeadlineExceededError(f"timed out trying to {verb} Secret {key}: {cause}")
        return SecretWriteError(f"failed to {verb} Secret {key}: {cause}")

    @staticmethod
    def _to_document(secret: client.V1Secret) -> SecretDocument:
        metadata = secret.metadata
        return SecretDocument(
            name=metadata.name,
            namespace=metadata.namespace,
            labels=dict(metadata.labels or {}),
            string_data=dict(secret.string_data or {}),
            data=dict(secret.data or {}),
            resource_version=metadata.resource_version,
        )
