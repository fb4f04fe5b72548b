# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Relay configuration from environment variables.

Everything is read once at startup. Missing or invalid required values raise
ConfigurationError before any key is loaded or any port is bound.
"""

import os
from dataclasses import dataclass
from typing import Mapping

import httpx

from protocol import (
    DEFAULT_LEDGER_HOST, DEFAULT_LEDGER_TIMEOUT, DEFAULT_PORT,
    ProtocolVersion, ConfigurationError,
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"", "0", "false", "no", "off"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class RelayConfig:
    ledger_id: str
    vault_address: str
    verifier_keypair_path: str
    arbitrator_keypair_path: str
    ledger_host: str = DEFAULT_LEDGER_HOST
    auth_enabled: bool = False
    auth_token: str = ""
    port: int = DEFAULT_PORT
    ledger_timeout: float = DEFAULT_LEDGER_TIMEOUT
    protocol_version: ProtocolVersion = ProtocolVersion.V2
    log_level: str = "INFO"

    def __repr__(self) -> str:
        # auth_token stays out of logs and tracebacks
        return (f"RelayConfig(ledger_id={self.ledger_id!r}, ledger_host={self.ledger_host!r}, "
                f"vault_address={self.vault_address!r}, auth_enabled={self.auth_enabled}, "
                f"port={self.port}, protocol_version={self.protocol_version.value})")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RelayConfig":
        env = os.environ if env is None else env

        def required(name: str) -> str:
            value = env.get(name, "").strip()
            if not value:
                raise ConfigurationError(f"{name} env var missing")
            return value

        ledger_id = required("LEDGER_ID")
        vault_address = required("VAULT_ADDRESS")
        verifier_path = required("VERIFIER_KEYPAIR_PATH")
        arbitrator_path = required("ARBITRATOR_KEYPAIR_PATH")

        auth_flag = env.get("AUTH_ENABLED", "").strip().lower()
        if auth_flag in _TRUE:
            auth_enabled = True
        elif auth_flag in _FALSE:
            auth_enabled = False
        else:
            raise ConfigurationError(f"AUTH_ENABLED must be a boolean, got {auth_flag!r}")
        auth_token = env.get("AUTH_TOKEN", "").strip()
        if auth_enabled and not auth_token:
            raise ConfigurationError("AUTH_TOKEN env var missing (AUTH_ENABLED is set)")

        raw_port = env.get("PORT", "").strip() or str(DEFAULT_PORT)
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got {raw_port!r}")
        if not 0 < port <= 65535:
            raise ConfigurationError(f"PORT out of range: {port}")

        raw_timeout = env.get("LEDGER_TIMEOUT", "").strip() or str(DEFAULT_LEDGER_TIMEOUT)
        try:
            ledger_timeout = float(raw_timeout)
        except ValueError:
            raise ConfigurationError(f"LEDGER_TIMEOUT must be a number, got {raw_timeout!r}")
        if not ledger_timeout > 0:
            raise ConfigurationError(f"LEDGER_TIMEOUT must be positive, got {raw_timeout!r}")

        raw_version = env.get("LEDGER_PROTOCOL_VERSION", "").strip().lower() or ProtocolVersion.V2.value
        try:
            protocol_version = ProtocolVersion(raw_version)
        except ValueError:
            choices = ", ".join(v.value for v in ProtocolVersion)
            raise ConfigurationError(
                f"LEDGER_PROTOCOL_VERSION must be one of {choices}, got {raw_version!r}"
            )

        log_level = env.get("LOG_LEVEL", "").strip().upper() or "INFO"
        if log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(sorted(_LOG_LEVELS))}, got {log_level!r}")

        ledger_host = env.get("LEDGER_HOST", "").strip() or DEFAULT_LEDGER_HOST
        try:
            url = httpx.URL(ledger_host)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"LEDGER_HOST is not a valid URL: {ledger_host!r} ({e})")
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(f"LEDGER_HOST must be an http(s) URL with a host, got {ledger_host!r}")

        return cls(
            ledger_id=ledger_id,
            vault_address=vault_address,
            verifier_keypair_path=verifier_path,
            arbitrator_keypair_path=arbitrator_path,
            ledger_host=ledger_host,
            auth_enabled=auth_enabled,
            auth_token=auth_token if auth_enabled else "",
            port=port,
            ledger_timeout=ledger_timeout,
            protocol_version=protocol_version,
            log_level=log_level,
        )
