"""
Tests for configuration validation, namespace resolution and durations.
"""

import pytest

from github_app_secret.config import AppSecretConfig, parse_duration
from github_app_secret.deadline import Deadline
from github_app_secret.errors import ConfigValidationError, DeadlineExceededError


def valid_config(**overrides) -> AppSecretConfig:
    values = dict(
        app_id=123456,
        installation_id=12345678,
        private_key_path="/etc/github-app/private-key.pem",
        secret_name="github-token",
    )
    values.update(overrides)
    return AppSecretConfig(**values)


class TestValidate:

    def test_defaults_are_valid(self):
        cfg = valid_config()
        cfg.validate()
        assert cfg.secret_type == "git"
        assert cfg.username == "x-access-token"
        assert cfg.argocd_type == "git"
        assert cfg.timeout == 15.0

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"app_id": 0}, "App ID"),
            ({"installation_id": 0}, "Installation ID"),
            ({"private_key_path": ""}, "--privateKeyPath"),
            ({"secret_name": ""}, "--secretName"),
            ({"secret_type": "ssh"}, "invalid secret type"),
            ({"secret_type": "argocd", "argocd_url": ""}, "--argocdURL"),
            ({"secret_type": "argocd-template", "argocd_type": "", "argocd_url": "u"}, "--argocdType"),
            ({"api_url": "not a url"}, "invalid API URL"),
            ({"api_url": "ftp://github.example.com"}, "invalid API URL"),
            ({"timeout": 0}, "timeout"),
            ({"timeout": float("nan")}, "timeout"),
            ({"timeout": float("inf")}, "timeout"),
        ],
    )
    def test_rejects(self, overrides, message):
        with pytest.raises(ConfigValidationError, match=message):
            valid_config(**overrides).validate()

    def test_argocd_with_fields(self):
        valid_config(
            secret_type="argocd",
            argocd_type="helm",
            argocd_url="https://charts.example.com",
        ).validate()

    def test_enterprise_url(self):
        valid_config(api_url="https://github.example.com/api/v3").validate()


class TestResolveNamespace:

    def test_flag_wins(self):
        cfg = valid_config(secret_namespace="flux")
        assert cfg.resolve_namespace({"NAMESPACE": "argocd"}) == "flux"

    def test_env(self):
        assert valid_config().resolve_namespace({"NAMESPACE": "argocd"}) == "argocd"

    def test_default(self):
        assert valid_config().resolve_namespace({}) == "default"

    def test_empty_env_is_default(self):
        assert valid_config().resolve_namespace({"NAMESPACE": ""}) == "default"


@pytest.mark.parametrize(
    "text,seconds",
    [("15s", 15), ("1m", 60), ("1m30s", 90), ("500ms", 0.5), ("2h", 7200), ("20", 20), ("1.5s", 1.5)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize(
    "text",
    ["", "fast", "15x", "s15", "1m-", "nan", "inf", "-inf", "1e400", "9" * 400 + "h"],
)
def test_parse_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_duration(text)


class TestDeadline:

    def test_remaining_counts_down(self):
        now = [100.0]
        deadline = Deadline(15, clock=lambda: now[0])

        assert deadline.check("generating token") == 15
        now[0] = 110.0
        assert deadline.remaining() == 5

    def test_expired(self):
        now = [0.0]
        deadline = Deadline(1, clock=lambda: now[0])
        now[0] = 2.0

        assert deadline.remaining() == 0
        with pytest.raises(DeadlineExceededError, match="patching Secret"):
            deadline.check("patching Secret")

    def test_must_be_positive(self):
        with pytest.raises(ValueError):
            Deadline(0)
