#!/usr/bin/env python3
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Guarantee relay server.

Startup order: config, identities, ledger principal, then bind. Any failure
before binding exits with status 1 and no port is opened.
"""

import asyncio
import logging
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import uvicorn

from config import RelayConfig
from crypto import load_or_create
from ledger import HTTPLedgerTransport, LedgerClient
from protocol import RelayError
from server.app import create_app

log = logging.getLogger("relay.server")


def build_app(config: RelayConfig):
    """Load identities, resolve the ledger principal and build the app."""
    verifier = load_or_create(config.verifier_keypair_path)
    arbitrator = load_or_create(config.arbitrator_keypair_path)
    log.info("Verifier public key: %s", verifier.public_key)
    log.info("Arbitrator public key: %s", arbitrator.public_key)

    # The probe's connections belong to asyncio.run's loop, so the app gets its own client.
    async def resolve_principal() -> str:
        probe = LedgerClient(
            HTTPLedgerTransport(config.ledger_host, config.ledger_id, timeout=config.ledger_timeout),
            timeout=config.ledger_timeout,
        )
        try:
            return await probe.get_principal()
        finally:
            await probe.aclose()

    principal = asyncio.run(resolve_principal())
    log.info("Ledger %s at %s, principal %s", config.ledger_id, config.ledger_host, principal)

    ledger = LedgerClient(
        HTTPLedgerTransport(config.ledger_host, config.ledger_id, timeout=config.ledger_timeout),
        timeout=config.ledger_timeout,
    )
    return create_app(
        ledger=ledger,
        verifier=verifier,
        arbitrator=arbitrator,
        vault_address=config.vault_address,
        auth_token=config.auth_token if config.auth_enabled else None,
        principal=principal,
        protocol_version=config.protocol_version,
    )


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = RelayConfig.from_env()
        logging.getLogger().setLevel(config.log_level)
        app = build_app(config)
    except RelayError as e:
        log.error("Startup failed: %s", e)
        return 1

    log.info("Listening on :%d (protocol %s)", config.port, config.protocol_version.value)
    uvicorn.run(app, host="0.0.0.0", port=config.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
