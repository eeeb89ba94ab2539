"""
GitHub App Token Generator

Generates short-lived installation access tokens for GitHub App
authentication. The token is what ends up in the Kubernetes Secret.

Token Lifecycle:
- JWT tokens (for app authentication): Valid for 10 minutes
- Installation tokens: Valid for 1 hour
- The CronJob running this tool should refresh well inside that hour

Example:
    generator = GitHubAppTokenGenerator()
    request = TokenRequest(
        app_id=123456,
        installation_id=12345678,
        private_key_path="/etc/github-app/private-key.pem",
    )
    result = generator.issue_token(request, timeout=15)
    token = result.token
"""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Protocol

import jwt
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from .errors import DeadlineExceededError, TokenGenerationError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.github.com"


@dataclass(frozen=True)
class TokenRequest:
    """Inputs for one installation token exchange."""

    app_id: int
    installation_id: int
    private_key_path: str
    api_base_url: Optional[str] = None


@dataclass(frozen=True)
class InstallationToken:
    token: str
    expires_at: Optional[str] = None


class TokenIssuer(Protocol):
    """Anything that can turn a TokenRequest into an installation token."""

    def issue_token(
        self, request: TokenRequest, timeout: Optional[float] = None
    ) -> InstallationToken:
        ...


class GitHubAppTokenGenerator:
    """
    Generates GitHub App installation tokens.

    GitHub Apps use a two-step authentication process:
    1. Generate a JWT signed with the app's private key
    2. Exchange the JWT for an installation access token

    The generator holds no per-request state; each call to issue_token
    reads the key, signs a fresh JWT and performs one exchange. There are
    no retries: a failed run is retried by re-running the whole job.
    """

    # JWT expiration time (GitHub allows up to 10 minutes)
    JWT_EXPIRATION_SECONDS = 600  # 10 minutes

    # Backdate iat to tolerate clock drift between us and GitHub
    JWT_CLOCK_DRIFT_SECONDS = 60

    # GitHub API endpoints
    INSTALLATION_TOKEN_ENDPOINT = "/app/installations/{installation_id}/access_tokens"

    # Response bodies are read in chunks so the timeout bounds the whole exchange
    RESPONSE_CHUNK_SIZE = 1024

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            session: Optional requests session; module-level requests.post
                     is used when omitted.
            clock: Monotonic clock used to enforce the overall timeout.
        """
        self._session = session
        self._clock = clock

    @staticmethod
    def load_private_key(private_key_path: str) -> str:
        """
        Read and validate the App's PEM private key.

        Both PKCS#1 ("BEGIN RSA PRIVATE KEY") and PKCS#8 ("BEGIN PRIVATE
        KEY") encodings are accepted as long as the key is RSA.

        Raises:
            TokenGenerationError: If the file is missing, unreadable, or
                                  does not hold an RSA private key.
        """
        key_path = Path(private_key_path)
        try:
            pem = key_path.read_text()
        except FileNotFoundError as e:
            raise TokenGenerationError(
                f"Private key not found: {private_key_path}"
            ) from e
        except OSError as e:
            raise TokenGenerationError(
                f"Could not read private key {private_key_path}: {e}"
            ) from e

        try:
            key = load_pem_private_key(pem.encode(), password=None)
        except (ValueError, TypeError) as e:
            raise TokenGenerationError(
                f"Invalid private key format in {private_key_path}. "
                "Expected PEM-encoded RSA private key."
            ) from e

        if not isinstance(key, rsa.RSAPrivateKey):
            raise TokenGenerationError(
                f"Private key in {private_key_path} is not an RSA key"
            )
        return pem

    def generate_jwt(self, app_id: int, private_key: str) -> str:
        """
        Generate a JWT for GitHub App authentication.

        The JWT authenticates as the GitHub App itself (not an
        installation) and is only used to request installation tokens.

        Returns:
            A signed RS256 JWT string valid for 10 minutes.
        """
        now = int(time.time())

        payload = {
            # Issued at time, backdated for clock drift
            "iat": now - self.JWT_CLOCK_DRIFT_SECONDS,
            # Expiration time (10 minutes from now)
            "exp": now + self.JWT_EXPIRATION_SECONDS,
            # GitHub App ID as issuer
            "iss": str(app_id),
        }

        try:
            return jwt.encode(payload, private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise TokenGenerationError(f"Failed to sign GitHub App JWT: {e}") from e

    def issue_token(
        self, request: TokenRequest, timeout: Optional[float] = None
    ) -> InstallationToken:
        """
        Exchange a freshly signed JWT for an installation access token.

        Args:
            request: App ID, installation ID, key path and optional API URL.
            timeout: Seconds allowed for the HTTP exchange.

        Returns:
            InstallationToken with the token and its ISO 8601 expiry.

        Raises:
            TokenGenerationError: For bad inputs, key problems, network
                                  failures and non-201 API responses.
            DeadlineExceededError: If the HTTP exchange timed out.
        """
        if request.app_id <= 0:
            raise TokenGenerationError(f"invalid Github App ID: {request.app_id}")
        if request.installation_id <= 0:
            raise TokenGenerationError(
                f"invalid Github App Installation ID: {request.installation_id}"
            )

        private_key = self.load_private_key(request.private_key_path)
        app_jwt = self.generate_jwt(request.app_id, private_key)

        base_url = (request.api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        endpoint = self.INSTALLATION_TOKEN_ENDPOINT.format(
            installation_id=request.installation_id
        )
        url = f"{base_url}{endpoint}"

        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {app_jwt}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        logger.debug(
            "Requesting installation token for app %d installation %d from %s",
            request.app_id,
            request.installation_id,
            base_url,
        )

        expires = self._clock() + timeout if timeout is not None else None
        post = self._session.post if self._session is not None else requests.post
        try:
            response = post(url, headers=headers, timeout=timeout, stream=True)
        except requests.Timeout as e:
            raise DeadlineExceededError(
                f"timed out requesting installation token: {e}"
            ) from e
        except requests.RequestException as e:
            raise TokenGenerationError(
                f"failed to request installation token: {e}"
            ) from e

        try:
            body = self._read_body(response, expires, timeout)
        finally:
            response.close()

        if response.status_code != 201:
            error_detail = ""
            try:
                error_data = json.loads(body)
                error_detail = f": {error_data.get('message', '')}"
            except (ValueError, AttributeError):
                pass
            raise TokenGenerationError(
                f"GitHub API returned {response.status_code} for installation "
                f"{request.installation_id}{error_detail}"
            )

        try:
            data = json.loads(body)
            token = data["token"]
        except (ValueError, KeyError, TypeError) as e:
            raise TokenGenerationError(
                "GitHub API response did not contain an installation token"
            ) from e

        return InstallationToken(token=token, expires_at=data.get("expires_at"))

    def _read_body(
        self, response: requests.Response, expires: Optional[float], timeout: Optional[float]
    ) -> bytes:
        """
        Read the streamed response body, giving up once the timeout has elapsed.

        requests applies its timeout to each socket read, so a server that
        trickles bytes could otherwise hold the exchange open indefinitely.

        Raises:
            DeadlineExceededError: If the body is not complete in time.
            TokenGenerationError: If the connection fails mid-body.
        """
        chunks = []
        try:
            self._check_expiry(expires, timeout)
            for chunk in response.iter_content(chunk_size=self.RESPONSE_CHUNK_SIZE):
                self._check_expiry(expires, timeout)
                chunks.append(chunk)
            self._check_expiry(expires, timeout)
        except requests.Timeout as e:
            raise DeadlineExceededError(
                f"timed out reading installation token response: {e}"
            ) from e
        except requests.RequestException as e:
            # iter_content reports socket read timeouts as ConnectionError
            self._check_expiry(expires, timeout)
            raise TokenGenerationError(
                f"failed to read installation token response: {e}"
            ) from e
        return b"".join(chunks)

    def _check_expiry(self, expires: Optional[float], timeout: Optional[float]) -> None:
        if expires is not None and self._clock() >= expires:
            raise DeadlineExceededError(
                f"timed out after {timeout:g}s waiting for installation token response"
            )

    @staticmethod
    def get_token_expiry_seconds(expires_at: str) -> int:
        """
        Calculate seconds until token expires.

        Args:
            expires_at: ISO 8601 timestamp from issue_token()

        Returns:
            Seconds until expiration (negative if already expired)
        """
        expiry = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        now = datetime.now(timezone.utc)
        return int((expiry - now).total_seconds())
