"""
Run configuration for github-app-secret.

AppSecretConfig holds the values parsed from the command line. validate()
runs before any network activity so that bad input never costs a token
exchange or a cluster round-trip.
"""

import math
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from .errors import ConfigValidationError
from .secret_materializer import ARGOCD_SECRET_TYPES, SECRET_GIT, SECRET_TYPES

DEFAULT_USERNAME = "x-access-token"
DEFAULT_ARGOCD_TYPE = "git"
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_NAMESPACE = "default"

# Injected through the downward API when running in a pod
NAMESPACE_ENV_VAR = "NAMESPACE"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str) -> float:
    """
    Parse a duration such as "15s", "1m30s", "500ms" or a bare number of seconds.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the string is not a recognised duration.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        total = float(text)
    except ValueError:
        total = _parse_units(text, value)
    if not math.isfinite(total):
        raise ValueError(f"invalid duration {value!r}")
    return total


def _parse_units(text: str, value: str) -> float:
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


@dataclass
class AppSecretConfig:
    """
    Everything needed for one token-to-Secret run.

    Attributes:
        api_url: GitHub API base URL; empty means https://api.github.com
        app_id: GitHub App ID
        installation_id: Installation ID of the App in the target org/user
        private_key_path: Path to the App's PEM private key
        secret_type: One of git, plain, argocd, argocd-template
        secret_name: Name of the Secret to write
        secret_namespace: Namespace of the Secret; empty means resolve from env
        argocd_type: Value of the "type" field for ArgoCD secrets
        argocd_url: Value of the "url" field for ArgoCD secrets
        username: Value of the "username" field
        timeout: Seconds allowed for the whole run
    """

    app_id: int = 0
    installation_id: int = 0
    private_key_path: str = ""
    secret_name: str = ""
    api_url: str = ""
    secret_type: str = SECRET_GIT
    secret_namespace: str = ""
    argocd_type: str = DEFAULT_ARGOCD_TYPE
    argocd_url: str = ""
    username: str = DEFAULT_USERNAME
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def validate(self) -> None:
        """
        Check the configuration, failing on the first problem found.

        Raises:
            ConfigValidationError: Describing the offending flag.
        """
        if self.api_url:
            parsed = urlparse(self.api_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigValidationError(f"invalid API URL: {self.api_url!r}")

        if self.app_id <= 0:
            raise ConfigValidationError(f"invalid Github App ID: {self.app_id}")
        if self.installation_id <= 0:
            raise ConfigValidationError(
                f"invalid Github App Installation ID: {self.installation_id}"
            )
        if not self.private_key_path:
            raise ConfigValidationError(
                "must provide a private key path with --privateKeyPath"
            )
        if not self.secret_name:
            raise ConfigValidationError("must provide a Secret name with --secretName")

        if self.secret_type not in SECRET_TYPES:
            raise ConfigValidationError(f"invalid secret type {self.secret_type!r}")
        if self.secret_type in ARGOCD_SECRET_TYPES:
            if not self.argocd_type:
                raise ConfigValidationError(
                    "ArgoCD Secret types require a Repository Credentials type, "
                    "set with --argocdType"
                )
            if not self.argocd_url:
                raise ConfigValidationError(
                    "ArgoCD Secret types require a URL, set with --argocdURL"
                )

        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ConfigValidationError(f"timeout must be positive, got {self.timeout:g}s")

    def resolve_namespace(self, environ: Optional[Mapping[str, str]] = None) -> str:
        """The --secretNamespace flag wins, then $NAMESPACE, then "default"."""
        if self.secret_namespace:
            return self.secret_namespace
        if environ is None:
            environ = os.environ
        return environ.get(NAMESPACE_ENV_VAR) or DEFAULT_NAMESPACE
