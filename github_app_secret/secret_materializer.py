"""
Secret Materializer

Turns an installation token into the fields a downstream consumer
(Git tooling, ArgoCD) expects, and writes them to a Kubernetes Secret
with create-or-patch semantics.

Kinds:
    git              username, password
    plain            token
    argocd           username, password, type, url
                     + label argocd.argoproj.io/secret-type=repository
    argocd-template  username, password, type, url
                     + label argocd.argoproj.io/secret-type=repo-creds

Only the fields and label a kind defines are ever written. Anything else
already on the Secret is left alone.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .deadline import Deadline
from .errors import ConfigValidationError, SecretConflictError, SecretWriteError
from .secret_store import SecretDocument, SecretKey, SecretStore

logger = logging.getLogger(__name__)

SECRET_GIT = "git"
SECRET_PLAIN = "plain"
SECRET_ARGOCD = "argocd"
SECRET_ARGOCD_TEMPLATE = "argocd-template"

SECRET_TYPES = (SECRET_GIT, SECRET_PLAIN, SECRET_ARGOCD, SECRET_ARGOCD_TEMPLATE)
ARGOCD_SECRET_TYPES = (SECRET_ARGOCD, SECRET_ARGOCD_TEMPLATE)

ARGOCD_SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type"

_KIND_LABELS = {
    SECRET_ARGOCD: {ARGOCD_SECRET_TYPE_LABEL: "repository"},
    SECRET_ARGOCD_TEMPLATE: {ARGOCD_SECRET_TYPE_LABEL: "repo-creds"},
}

# One retry of the read-modify-write cycle on a 409
MAX_CONFLICT_ATTEMPTS = 2


class OperationResult(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class SecretAux:
    """Kind-specific values that are not the token itself."""

    username: str = "x-access-token"
    argocd_type: str = "git"
    argocd_url: str = ""


def labels_for(kind: str) -> Dict[str, str]:
    """Labels the given kind sets; empty for git and plain."""
    if kind not in SECRET_TYPES:
        raise ConfigValidationError(f"invalid secret type {kind!r}")
    return dict(_KIND_LABELS.get(kind, {}))


def populate_string_data(kind: str, token: str, aux: SecretAux) -> Dict[str, str]:
    """
    Build the stringData fields for a kind.

    Raises:
        ConfigValidationError: If kind is not one of SECRET_TYPES.
    """
    if kind == SECRET_GIT:
        return {"username": aux.username, "password": token}
    if kind == SECRET_PLAIN:
        return {"token": token}
    if kind in ARGOCD_SECRET_TYPES:
        return {
            "username": aux.username,
            "password": token,
            "type": aux.argocd_type,
            "url": aux.argocd_url,
        }
    raise ConfigValidationError(f"invalid secret type {kind!r}")


def _time_left(deadline: Optional[Deadline], step: str) -> Optional[float]:
    if deadline is None:
        return None
    return deadline.check(step)


def _is_current(document: SecretDocument, labels: Dict[str, str], fields: Dict[str, str]) -> bool:
    for name, value in labels.items():
        if document.labels.get(name) != value:
            return False
    current = document.decoded_values()
    return all(current.get(name) == value for name, value in fields.items())


def create_or_update_secret(
    store: SecretStore,
    key: SecretKey,
    kind: str,
    token: str,
    aux: SecretAux,
    deadline: Optional[Deadline] = None,
) -> OperationResult:
    """
    Create the Secret, or patch the kind's labels and fields into it.

    A patch is skipped entirely when the Secret already holds the desired
    labels and values, so repeated runs with the same token are no-ops.
    A write conflict restarts the read-modify-write cycle once.

    Args:
        store: Where the Secret lives
        key: Namespace and name of the Secret
        kind: One of SECRET_TYPES
        token: Installation token to store
        aux: username and ArgoCD fields
        deadline: Optional run deadline; each store call gets the time left

    Returns:
        Whether the Secret was created, updated or left unchanged.

    Raises:
        ConfigValidationError: For an unknown kind.
        SecretWriteError: For an empty identity, a repeated conflict, or
                          any other cluster failure.
        DeadlineExceededError: If the run deadline passes before a store call.
    """
    if not key.namespace or not key.name:
        raise SecretWriteError(
            f"Secret namespace and name must be non-empty, got {key.namespace!r}/{key.name!r}"
        )

    labels = labels_for(kind)
    fields = populate_string_data(kind, token, aux)

    attempt = 1
    while True:
        try:
            return _apply(store, key, labels, fields, deadline)
        except SecretConflictError as e:
            if attempt >= MAX_CONFLICT_ATTEMPTS:
                raise SecretWriteError(
                    f"Secret {key} kept changing during update: {e}"
                ) from e
            logger.debug("Conflict writing Secret %s, retrying: %s", key, e)
            attempt += 1


def _apply(
    store: SecretStore,
    key: SecretKey,
    labels: Dict[str, str],
    fields: Dict[str, str],
    deadline: Optional[Deadline],
) -> OperationResult:
    existing = store.get(key, timeout=_time_left(deadline, "reading Secret"))

    if existing is None:
        document = SecretDocument(
            name=key.name,
            namespace=key.namespace,
            labels=dict(labels),
            string_data=dict(fields),
        )
        store.create(document, timeout=_time_left(deadline, "creating Secret"))
        logger.debug("Created Secret %s", key)
        return OperationResult.CREATED

    if _is_current(existing, labels, fields):
        logger.debug("Secret %s already up to date", key)
        return OperationResult.UNCHANGED

    store.patch(
        key,
        labels=labels,
        string_data=fields,
        resource_version=existing.resource_version,
        timeout=_time_left(deadline, "patching Secret"),
    )
    logger.debug("Patched Secret %s", key)
    return OperationResult.UPDATED
