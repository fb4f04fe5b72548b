"""Tests for config.py environment parsing."""

import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from config import RelayConfig
from protocol import (
    DEFAULT_LEDGER_HOST, DEFAULT_LEDGER_TIMEOUT, DEFAULT_PORT,
    ConfigurationError, ProtocolVersion,
)

BASE_ENV = {
    "LEDGER_ID": "be2us-64aaa-aaaaa-qaabq-cai",
    "VAULT_ADDRESS": "StakeVault_SolanaAddress",
    "VERIFIER_KEYPAIR_PATH": "/keys/verifier.json",
    "ARBITRATOR_KEYPAIR_PATH": "/keys/arbitrator.json",
}


def _env(**overrides):
    env = dict(BASE_ENV)
    env.update(overrides)
    return env


def test_minimal_env_defaults():
    cfg = RelayConfig.from_env(BASE_ENV)
    assert cfg.ledger_id == BASE_ENV["LEDGER_ID"]
    assert cfg.ledger_host == DEFAULT_LEDGER_HOST
    assert cfg.port == DEFAULT_PORT
    assert cfg.ledger_timeout == DEFAULT_LEDGER_TIMEOUT
    assert cfg.protocol_version is ProtocolVersion.V2
    assert cfg.auth_enabled is False
    assert cfg.auth_token == ""
    assert cfg.log_level == "INFO"


@pytest.mark.parametrize("name", sorted(BASE_ENV))
def test_missing_required(name):
    env = dict(BASE_ENV)
    del env[name]
    with pytest.raises(ConfigurationError, match=name):
        RelayConfig.from_env(env)


def test_blank_required_counts_as_missing():
    with pytest.raises(ConfigurationError, match="VAULT_ADDRESS"):
        RelayConfig.from_env(_env(VAULT_ADDRESS="   "))


def test_auth_enabled_needs_token():
    with pytest.raises(ConfigurationError, match="AUTH_TOKEN"):
        RelayConfig.from_env(_env(AUTH_ENABLED="true"))


def test_auth_enabled_with_token():
    cfg = RelayConfig.from_env(_env(AUTH_ENABLED="1", AUTH_TOKEN="tok"))
    assert cfg.auth_enabled is True
    assert cfg.auth_token == "tok"


def test_token_ignored_when_auth_disabled():
    cfg = RelayConfig.from_env(_env(AUTH_ENABLED="false", AUTH_TOKEN="tok"))
    assert cfg.auth_token == ""


def test_bad_auth_flag():
    with pytest.raises(ConfigurationError, match="AUTH_ENABLED"):
        RelayConfig.from_env(_env(AUTH_ENABLED="maybe"))


@pytest.mark.parametrize("port", ["abc", "0", "70000"])
def test_bad_port(port):
    with pytest.raises(ConfigurationError, match="PORT"):
        RelayConfig.from_env(_env(PORT=port))


@pytest.mark.parametrize("timeout", ["soon", "0", "-1"])
def test_bad_timeout(timeout):
    with pytest.raises(ConfigurationError, match="LEDGER_TIMEOUT"):
        RelayConfig.from_env(_env(LEDGER_TIMEOUT=timeout))


def test_protocol_version_v1():
    cfg = RelayConfig.from_env(_env(LEDGER_PROTOCOL_VERSION="V1"))
    assert cfg.protocol_version is ProtocolVersion.V1


def test_bad_protocol_version():
    with pytest.raises(ConfigurationError, match="LEDGER_PROTOCOL_VERSION"):
        RelayConfig.from_env(_env(LEDGER_PROTOCOL_VERSION="v3"))


def test_log_level():
    assert RelayConfig.from_env(_env(LOG_LEVEL="debug")).log_level == "DEBUG"
    with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
        RelayConfig.from_env(_env(LOG_LEVEL="chatty"))


def test_explicit_values():
    cfg = RelayConfig.from_env(_env(LEDGER_HOST="http://ledger:8000", PORT="8080",
                                    LEDGER_TIMEOUT="2.5"))
    assert cfg.ledger_host == "http://ledger:8000"
    assert cfg.port == 8080
    assert cfg.ledger_timeout == 2.5


@pytest.mark.parametrize("host", ["localhost:4943", "ftp://ledger", "http://", "http://ledger:notaport"])
def test_bad_ledger_host(host):
    with pytest.raises(ConfigurationError, match="LEDGER_HOST"):
        RelayConfig.from_env(_env(LEDGER_HOST=host))


def test_https_ledger_host():
    cfg = RelayConfig.from_env(_env(LEDGER_HOST="https://icp0.io"))
    assert cfg.ledger_host == "https://icp0.io"


def test_repr_hides_token():
    cfg = RelayConfig.from_env(_env(AUTH_ENABLED="yes", AUTH_TOKEN="very-secret"))
    assert "very-secret" not in repr(cfg)


def test_reads_os_environ(monkeypatch):
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("PORT", "4000")
    assert RelayConfig.from_env().port == 4000


def test_bad_ledger_host_exits_before_binding(monkeypatch):
    import run_server
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("LEDGER_HOST", "http://ledger:notaport")
    monkeypatch.setattr(run_server, "build_app", lambda cfg: pytest.fail("identities loaded"))
    monkeypatch.setattr(run_server.uvicorn, "run", lambda *a, **kw: pytest.fail("port bound"))
    assert run_server.main() == 1
