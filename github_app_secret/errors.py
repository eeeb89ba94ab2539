"""
Error taxonomy for github-app-secret.

Every failure the tool can report derives from AppSecretError and carries
the process exit code the CLI should use for it.
"""


class AppSecretError(Exception):
    """Base class for all github-app-secret failures."""

    exit_code = 1


class ConfigValidationError(AppSecretError):
    """Missing or invalid input, detected before any network call."""

    exit_code = 1


class TokenGenerationError(AppSecretError):
    """Private key unreadable, JWT signing failed, or GitHub rejected the exchange."""

    exit_code = 2


class SecretWriteError(AppSecretError):
    """The cluster API refused or failed the Secret read/create/patch."""

    exit_code = 3


class SecretConflictError(SecretWriteError):
    """The Secret changed between read and write (HTTP 409)."""


class DeadlineExceededError(AppSecretError):
    """The overall run timeout elapsed during token generation or secret write."""

    exit_code = 4
