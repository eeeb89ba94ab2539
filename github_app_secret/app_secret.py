"""
Generate a GitHub App installation token and store it in a Secret.

AppSecret wires a TokenIssuer to a SecretStore. Both are passed in,
together with the logger, so the flow can run against fakes in tests.
"""

import logging
from typing import Optional

from .deadline import Deadline
from .secret_materializer import OperationResult, SecretAux, create_or_update_secret
from .secret_store import SecretKey, SecretStore
from .token_generator import GitHubAppTokenGenerator, TokenIssuer, TokenRequest


class AppSecret:
    """Token generation plus Secret upsert for one configured GitHub App installation."""

    def __init__(
        self,
        store: SecretStore,
        issuer: TokenIssuer,
        request: TokenRequest,
        aux: SecretAux,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.issuer = issuer
        self.request = request
        self.aux = aux
        self.log = logger or logging.getLogger(__name__)

    def generate_token(self, deadline: Optional[Deadline] = None) -> str:
        """Issue an installation token within the deadline."""
        timeout = deadline.check("generating token") if deadline is not None else None
        result = self.issuer.issue_token(self.request, timeout=timeout)
        if deadline is not None:
            deadline.check("writing Secret")

        if result.expires_at:
            try:
                remaining = GitHubAppTokenGenerator.get_token_expiry_seconds(result.expires_at)
            except ValueError:
                self.log.debug("Installation token expires at %s", result.expires_at)
            else:
                self.log.debug(
                    "Installation token expires at %s (in %d minutes)",
                    result.expires_at,
                    remaining // 60,
                )
        return result.token

    def create_or_update_secret(
        self,
        key: SecretKey,
        secret_type: str,
        token: str,
        deadline: Optional[Deadline] = None,
    ) -> OperationResult:
        result = create_or_update_secret(
            self.store, key, secret_type, token, self.aux, deadline=deadline
        )
        self.log.debug("Secret %s %s", key, result.value)
        return result

    def generate_and_create(
        self, key: SecretKey, secret_type: str, deadline: Optional[Deadline] = None
    ) -> OperationResult:
        """
        Generate a token and write it to the Secret identified by key.

        Nothing is retried here: if the token exchange succeeds but the
        write fails, the caller re-runs the whole sequence.
        """
        token = self.generate_token(deadline)
        return self.create_or_update_secret(key, secret_type, token, deadline)
