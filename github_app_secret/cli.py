"""
Command-line entry point.

Usage:
    github-app-secret \
        --appID 123456 \
        --installationID 12345678 \
        --privateKeyPath /etc/github-app/private-key.pem \
        --secretName github-token \
        --secretType git

Exit codes:
    0 - Secret created, updated or already current
    1 - Invalid configuration or Kubernetes client setup failed
    2 - Token generation failed
    3 - Secret write failed
    4 - Timed out
"""

import argparse
import logging
import os
import sys
from typing import Callable, List, Mapping, Optional

from .app_secret import AppSecret
from .config import (
    DEFAULT_ARGOCD_TYPE,
    DEFAULT_USERNAME,
    AppSecretConfig,
    parse_duration,
)
from .deadline import Deadline
from .errors import AppSecretError, ConfigValidationError
from .secret_materializer import SECRET_GIT, SECRET_TYPES, SecretAux
from .secret_store import KubernetesSecretStore, SecretKey, SecretStore, load_kube_client
from .token_generator import GitHubAppTokenGenerator, TokenIssuer, TokenRequest

logger = logging.getLogger("github_app_secret")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(verbosity: int = 0) -> None:
    """Single-line logs on stderr; any verbosity above 0 enables debug output."""
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger().setLevel(level)
    # urllib3 and the kubernetes client are noisy at debug
    if verbosity < 2:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("kubernetes").setLevel(logging.WARNING)


def kubernetes_store() -> SecretStore:
    return KubernetesSecretStore(load_kube_client())


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


class _FlagParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad flags as ConfigValidationError instead of exiting."""

    def error(self, message):
        raise ConfigValidationError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _FlagParser(
        prog="github-app-secret",
        description="Generate a GitHub App installation token and store it in a Kubernetes Secret",
    )
    parser.add_argument(
        "-v", "--logLevel",
        type=int,
        default=0,
        help="Log verbosity level",
    )
    parser.add_argument(
        "--apiURL",
        default="",
        help='Github API URL (default "https://api.github.com")',
    )
    parser.add_argument("--appID", type=int, default=0, help="Github App ID")
    parser.add_argument(
        "--installationID",
        type=int,
        default=0,
        help="Github App Installation ID",
    )
    parser.add_argument(
        "--privateKeyPath",
        default="",
        help="Path to the Github App private key",
    )
    parser.add_argument(
        "--secretType",
        default=SECRET_GIT,
        help=f"Type of secret to create [{', '.join(SECRET_TYPES)}]",
    )
    parser.add_argument(
        "--timeout",
        type=_duration,
        default="15s",
        help="Timeout for token generation and secret creation (e.g. 15s, 1m)",
    )
    parser.add_argument(
        "--secretName",
        default="",
        help="Name of the Secret to store the token in",
    )
    parser.add_argument(
        "--secretNamespace",
        default="",
        help="Namespace of the Secret (default: $NAMESPACE, else \"default\")",
    )
    parser.add_argument(
        "--argocdType",
        default=DEFAULT_ARGOCD_TYPE,
        help="ArgoCD Repository Credentials type",
    )
    parser.add_argument(
        "--argocdURL",
        default="",
        help="ArgoCD URL Repository Credential",
    )
    parser.add_argument(
        "--username",
        default=DEFAULT_USERNAME,
        help="Username field value in the Secret",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> AppSecretConfig:
    return AppSecretConfig(
        api_url=args.apiURL,
        app_id=args.appID,
        installation_id=args.installationID,
        private_key_path=args.privateKeyPath,
        secret_type=args.secretType,
        secret_name=args.secretName,
        secret_namespace=args.secretNamespace,
        argocd_type=args.argocdType,
        argocd_url=args.argocdURL,
        username=args.username,
        timeout=args.timeout,
    )


def main(
    argv: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    store_factory: Optional[Callable[[], SecretStore]] = None,
    issuer: Optional[TokenIssuer] = None,
) -> int:
    """
    Run one token-to-Secret refresh.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])
        environ: Environment used for namespace resolution
        store_factory: Builds the SecretStore; defaults to the Kubernetes API
        issuer: Token issuer; defaults to GitHubAppTokenGenerator

    Returns:
        Process exit code.
    """
    try:
        args = build_parser().parse_args(argv)
    except ConfigValidationError as e:
        configure_logging()
        logger.error("validation failed: %s", e)
        return e.exit_code
    configure_logging(args.logLevel)
    cfg = config_from_args(args)

    try:
        cfg.validate()
    except AppSecretError as e:
        logger.error("validation failed: %s", e)
        return e.exit_code

    try:
        store = (store_factory or kubernetes_store)()
    except AppSecretError as e:
        logger.error("failed to configure kubernetes client: %s", e)
        return e.exit_code

    key = SecretKey(namespace=cfg.resolve_namespace(environ), name=cfg.secret_name)
    request = TokenRequest(
        app_id=cfg.app_id,
        installation_id=cfg.installation_id,
        private_key_path=cfg.private_key_path,
        api_base_url=cfg.api_url or None,
    )
    aux = SecretAux(
        username=cfg.username,
        argocd_type=cfg.argocd_type,
        argocd_url=cfg.argocd_url,
    )
    app_secret = AppSecret(
        store=store,
        issuer=issuer or GitHubAppTokenGenerator(),
        request=request,
        aux=aux,
        logger=logger,
    )

    deadline = Deadline(cfg.timeout)
    try:
        app_secret.generate_and_create(key, cfg.secret_type, deadline)
    except AppSecretError as e:
        logger.error(
            "failed to generate token and create secret: %s",
            e,
            exc_info=args.logLevel > 0,
        )
        return e.exit_code

    logger.info("token generated and created/updated Secret (%s)", key)
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main(environ=os.environ))
