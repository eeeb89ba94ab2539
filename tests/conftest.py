"""
Pytest fixtures for github-app-secret unit tests.

Nothing here talks to GitHub or a cluster: the token exchange is patched
at requests.post and Secrets live in FakeSecretStore, an in-memory store
that behaves like the API server for the calls the tool makes.
"""

import base64
import copy
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from github_app_secret.errors import SecretConflictError, TokenGenerationError
from github_app_secret.secret_store import SecretDocument, SecretKey
from github_app_secret.token_generator import InstallationToken, TokenRequest


def _encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


class FakeSecretStore:
    """
    In-memory SecretStore.

    Like the API server, it folds stringData into base64 data on write and
    bumps resourceVersion on every change. Setting conflicts makes the
    next N writes fail with SecretConflictError.
    """

    def __init__(self):
        self.secrets: Dict[SecretKey, SecretDocument] = {}
        self.calls: List[str] = []
        self.conflicts = 0
        self._version = 0

    def seed(self, namespace: str, name: str, labels=None, values=None) -> SecretDocument:
        self._version += 1
        doc = SecretDocument(
            name=name,
            namespace=namespace,
            labels=dict(labels or {}),
            data={k: _encode(v) for k, v in (values or {}).items()},
            resource_version=str(self._version),
        )
        self.secrets[doc.key] = doc
        return copy.deepcopy(doc)

    def values(self, namespace: str, name: str) -> Dict[str, str]:
        return self.secrets[SecretKey(namespace, name)].decoded_values()

    def labels(self, namespace: str, name: str) -> Dict[str, str]:
        return dict(self.secrets[SecretKey(namespace, name)].labels)

    def _maybe_conflict(self, key: SecretKey):
        if self.conflicts > 0:
            self.conflicts -= 1
            self._version += 1
            raise SecretConflictError(f"Operation cannot be fulfilled on secrets {key.name!r}")

    def get(self, key: SecretKey, timeout: Optional[float] = None) -> Optional[SecretDocument]:
        self.calls.append("get")
        doc = self.secrets.get(key)
        return copy.deepcopy(doc) if doc is not None else None

    def create(self, document: SecretDocument, timeout: Optional[float] = None) -> SecretDocument:
        self.calls.append("create")
        self._maybe_conflict(document.key)
        if document.key in self.secrets:
            raise SecretConflictError(f"secrets {document.name!r} already exists")
        self._version += 1
        stored = SecretDocument(
            name=document.name,
            namespace=document.namespace,
            labels=dict(document.labels),
            data={k: _encode(v) for k, v in document.string_data.items()},
            resource_version=str(self._version),
        )
        self.secrets[stored.key] = stored
        return copy.deepcopy(stored)

    def patch(self, key, labels, string_data, resource_version=None, timeout=None):
        self.calls.append("patch")
        self._maybe_conflict(key)
        stored = self.secrets[key]
        if resource_version is not None and resource_version != stored.resource_version:
            raise SecretConflictError(f"resourceVersion {resource_version} is stale")
        self._version += 1
        stored.labels.update(labels)
        stored.data.update({k: _encode(v) for k, v in string_data.items()})
        stored.resource_version = str(self._version)
        return copy.deepcopy(stored)


class FakeTokenIssuer:
    """TokenIssuer returning canned tokens in order, without any network."""

    def __init__(self, *tokens: str, error: Optional[Exception] = None):
        self.tokens = list(tokens) or ["ghs_fake_token"]
        self.error = error
        self.requests: List[TokenRequest] = []
        self.timeouts: List[Optional[float]] = []

    def issue_token(self, request: TokenRequest, timeout: Optional[float] = None) -> InstallationToken:
        self.requests.append(request)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        token = self.tokens.pop(0) if len(self.tokens) > 1 else self.tokens[0]
        return InstallationToken(token=token, expires_at="2099-01-15T12:00:00Z")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sample_private_key():
    """Generate a valid RSA private key for testing."""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return pem.decode()


@pytest.fixture
def temp_key_file(tmp_path, sample_private_key):
    """Write the RSA key to a temporary .pem file."""
    key_path = tmp_path / "github-app-private-key.pem"
    key_path.write_text(sample_private_key)
    return str(key_path)


@pytest.fixture
def fake_store():
    return FakeSecretStore()


@pytest.fixture
def fake_issuer():
    return FakeTokenIssuer("tok123")


@pytest.fixture
def failing_issuer():
    return FakeTokenIssuer(error=TokenGenerationError("GitHub API returned 401: Bad credentials"))
