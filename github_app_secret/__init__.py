# GitHub App installation tokens, materialized as Kubernetes Secrets.
#
# Generates a short-lived GitHub App installation token and writes it to a
# Secret in one of the git, plain, argocd or argocd-template formats.
#
# Usage:
#   from github_app_secret import AppSecret, GitHubAppTokenGenerator
#
#   app_secret = AppSecret(
#       store=KubernetesSecretStore(load_kube_client()),
#       issuer=GitHubAppTokenGenerator(),
#       request=TokenRequest(app_id=123456, installation_id=12345678,
#                            private_key_path="./private-key.pem"),
#       aux=SecretAux(),
#   )
#   app_secret.generate_and_create(SecretKey("default", "github-token"), "git")

from .app_secret import AppSecret
from .errors import (
    AppSecretError,
    ConfigValidationError,
    DeadlineExceededError,
    SecretConflictError,
    SecretWriteError,
    TokenGenerationError,
)
from .secret_materializer import (
    SECRET_ARGOCD,
    SECRET_ARGOCD_TEMPLATE,
    SECRET_GIT,
    SECRET_PLAIN,
    SECRET_TYPES,
    OperationResult,
    SecretAux,
    create_or_update_secret,
)
from .secret_store import KubernetesSecretStore, SecretDocument, SecretKey, load_kube_client
from .token_generator import GitHubAppTokenGenerator, InstallationToken, TokenRequest

__all__ = [
    "AppSecret",
    "AppSecretError",
    "ConfigValidationError",
    "DeadlineExceededError",
    "GitHubAppTokenGenerator",
    "InstallationToken",
    "KubernetesSecretStore",
    "OperationResult",
    "SECRET_ARGOCD",
    "SECRET_ARGOCD_TEMPLATE",
    "SECRET_GIT",
    "SECRET_PLAIN",
    "SECRET_TYPES",
    "SecretAux",
    "SecretConflictError",
    "SecretDocument",
    "SecretKey",
    "SecretWriteError",
    "TokenGenerationError",
    "TokenRequest",
    "create_or_update_secret",
    "load_kube_client",
]
