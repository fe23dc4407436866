"""
Tests for Secrets Manager credential resolution, with a stub boto3 client.
"""

from __future__ import annotations

import json

import pytest

from patent_explorer.secrets_manager import SecretsManager


class _StubClient:
    def __init__(self, secrets):
        self.secrets = secrets
        self.calls = []
        self.fail = False

    def get_secret_value(self, SecretId):
        self.calls.append(SecretId)
        if self.fail:
            raise RuntimeError("AWS unreachable")
        return {"SecretString": self.secrets[SecretId]}


@pytest.fixture
def manager():
    stub = _StubClient({
        "valyu-api-key": "valyu-from-aws",
        "patent-explorer-db": json.dumps({"username": "patents", "password": "rotated"}),
    })
    secrets = SecretsManager(region_name="us-east-1", cache_ttl=300)
    secrets._client = stub
    return secrets, stub


def test_resolves_api_keys_and_db_credentials(manager) -> None:
    secrets, _ = manager

    assert secrets.resolve("valyu_api_key") == "valyu-from-aws"
    assert secrets.resolve("db_username") == "patents"
    assert secrets.resolve("db_password") == "rotated"
    assert secrets.resolve("log_level") is None


def test_values_are_cached_and_served_stale_on_failure(manager) -> None:
    secrets, stub = manager

    secrets.get_api_key("valyu")
    secrets.get_api_key("valyu")
    assert stub.calls == ["valyu-api-key"]

    secrets.cache_ttl = 0
    stub.fail = True
    assert secrets.get_api_key("valyu") == "valyu-from-aws"


def test_failure_without_cached_value_raises(manager) -> None:
    secrets, stub = manager
    stub.fail = True

    with pytest.raises(RuntimeError):
        secrets.get_api_key("valyu")
