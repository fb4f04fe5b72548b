# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Ledger client for the guarantee relay.

The escrow ledger is an external state machine. This module is a stateless
typed proxy over its RPC contract with a pluggable transport:

- HTTPLedgerTransport: JSON over HTTP (httpx)
- StubLedger: in-process double that records calls, for tests

No retries and no caching: the ledger is the only source of truth, and
whatever it answers (result or rejection) is handed back unmodified.
Every call is bounded by a timeout and surfaces as RemoteTimeoutError,
never as a ledger rejection.
"""

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod

import httpx

from attestation import OptionalSignature
from protocol import (
    DEFAULT_LEDGER_TIMEOUT, EscrowMode, EscrowStatus,
    RemoteError, RemoteTimeoutError,
)

log = logging.getLogger("relay.ledger")

# Ledger method names (fixed RPC contract)
M_INITIALIZE = "initialize"
M_CONFIRM_STAKING = "confirmStakingComplete"
M_CONFIRM_TRADING = "confirmTradingComplete"
M_CONFIRM_SETTLING = "confirmSettlingComplete"
M_INITIATE_DISPUTE = "initiateDispute"
M_RESOLVE_DISPUTE = "resolveDispute"
M_TRANSACTION_DETAILS = "getTransactionDetails"
M_PROOF_DETAILS = "getProofDetails"
M_PRINCIPAL = "getThisCanisterPrincipalText"
M_PUBLIC_KEY = "getSchnorrPublicKey"
M_SIGN_WITH_SCHNORR = "signWithSchnorr"
M_SIGN_WITH_SCHNORR_CONTENT = "getSignWithSchnorrContent"


def variant(name: str) -> dict:
    """Ledger enum encoding: {"Settlement": null}."""
    return {name: None}


class LedgerTransport(ABC):
    """Override this to speak whatever the ledger deployment speaks."""

    @abstractmethod
    async def call(self, method: str, args: list):
        """Invoke *method* with positional *args*. Returns the ledger's result.

        Raises RemoteError if the ledger rejects the call.
        """
        ...

    async def aclose(self) -> None:
        pass


class HTTPLedgerTransport(LedgerTransport):
    """Default. POSTs {"ledger", "method", "args"} and reads {"result"} or {"error"}."""

    def __init__(self, host: str, ledger_id: str, timeout: float = DEFAULT_LEDGER_TIMEOUT,
                 client: httpx.AsyncClient | None = None):
        self.host = host.rstrip("/")
        self.ledger_id = ledger_id
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def call(self, method: str, args: list):
        try:
            resp = await self._client.post(
                self.host,
                json={"ledger": self.ledger_id, "method": method, "args": args},
            )
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(f"{method}: ledger did not answer ({e!r})") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteError(f"{method}: ledger unreachable ({e})") from e

        if resp.status_code >= 400:
            raise RemoteError(f"{method}: ledger HTTP {resp.status_code}: {resp.text}")
        try:
            result = resp.json()
        except ValueError as e:
            raise RemoteError(f"{method}: ledger returned a non-JSON response") from e
        if not isinstance(result, dict):
            raise RemoteError(f"{method}: ledger returned an unexpected response")
        if "error" in result:
            raise RemoteError(str(result["error"]))
        return result.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()


class StubLedger(LedgerTransport):
    """No-network ledger for testing.

    Every call is appended to self.calls as (method, args). Only the bits
    of ledger behaviour the relay reads are modelled: initialize hands out
    ids, reads return what was stored. No state transitions are enforced.
    """

    def __init__(self, principal: str = "be2us-64aaa-aaaaa-qaabq-cai",
                 public_key: str = "stub-schnorr-public-key", delay: float = 0.0):
        self.principal = principal
        self.public_key = public_key
        self.delay = delay
        self.calls: list[tuple[str, list]] = []
        self.transactions: dict[str, dict] = {}
        self.proofs: dict[str, str] = {}
        self.rejections: dict[str, str] = {}  # method -> error message
        self._ids = itertools.count(1)

    def reject(self, method: str, error: str) -> None:
        """Make every later call to *method* fail with *error*."""
        self.rejections[method] = error

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    async def call(self, method: str, args: list):
        self.calls.append((method, list(args)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if method in self.rejections:
            raise RemoteError(self.rejections[method])

        if method == M_INITIALIZE:
            tx_id = f"tx-{next(self._ids)}"
            (mode, comments, party_a, party_b, amount_a, amount_b,
             verifier_key, arbitrator_key, stake_duration, trade_duration) = args
            self.transactions[tx_id] = {
                "id": tx_id,
                "escrowMode": mode,
                "status": variant(EscrowStatus.CREATED.value),
                "comments": comments,
                "participantASolanaAddress": party_a,
                "participantBSolanaAddress": party_b,
                "participantAShouldStakeUSDCAmount": amount_a,
                "participantBShouldStakeUSDCAmount": amount_b,
                "verifierPublicKey": verifier_key,
                "arbitratorPublicKey": arbitrator_key,
                "stakeDuration": stake_duration,
                "tradeDuration": trade_duration,
            }
            return tx_id
        if method == M_TRANSACTION_DETAILS:
            record = self.transactions.get(args[0])
            return [record] if record is not None else []
        if method == M_PROOF_DETAILS:
            return self.proofs.get(args[0], "")
        if method == M_PRINCIPAL:
            return self.principal
        if method == M_PUBLIC_KEY:
            return self.public_key
        if method == M_SIGN_WITH_SCHNORR:
            return f"stub-signature-{args[0]}"
        if method == M_SIGN_WITH_SCHNORR_CONTENT:
            return f"stub-content-{args[0]}"
        return None


class LedgerClient:
    """Typed proxy: one method per ledger operation.

    Holds only the transport, so concurrent requests can share one instance.
    """

    def __init__(self, transport: LedgerTransport, timeout: float = DEFAULT_LEDGER_TIMEOUT):
        self.transport = transport
        self.timeout = timeout

    async def _call(self, method: str, *args):
        try:
            return await asyncio.wait_for(self.transport.call(method, list(args)), self.timeout)
        except asyncio.TimeoutError as e:
            log.warning("Ledger %s timed out after %ss", method, self.timeout)
            raise RemoteTimeoutError(f"{method}: no answer within {self.timeout}s") from e
        except RemoteError as e:
            log.warning("Ledger rejected %s: %s", method, e)
            raise

    async def aclose(self) -> None:
        await self.transport.aclose()

    # --- Lifecycle ---

    async def initialize(self, mode: EscrowMode, comments: str,
                         participant_a: str, participant_b: str,
                         amount_a: int, amount_b: int,
                         verifier_public_key: str, arbitrator_public_key: str,
                         stake_duration: int, trade_duration: int) -> str:
        """Create an escrow transaction. Returns the ledger-assigned id."""
        return await self._call(
            M_INITIALIZE, variant(mode.value), comments,
            participant_a, participant_b, amount_a, amount_b,
            verifier_public_key, arbitrator_public_key,
            stake_duration, trade_duration,
        )

    async def confirm_staking_complete(self, tx_id: str, vault_address: str,
                                       participant: str, timestamp: int, signature: str):
        return await self._call(M_CONFIRM_STAKING, tx_id, vault_address,
                                participant, timestamp, signature)

    async def confirm_trading_complete(self, tx_id: str,
                                       participant_a: OptionalSignature,
                                       participant_b: OptionalSignature,
                                       verifier: OptionalSignature):
        return await self._call(M_CONFIRM_TRADING, tx_id, participant_a.to_wire(),
                                participant_b.to_wire(), verifier.to_wire())

    async def confirm_settling_complete(self, tx_id: str, vault_address: str,
                                        participant: str, timestamp: int, signature: str):
        return await self._call(M_CONFIRM_SETTLING, tx_id, vault_address,
                                participant, timestamp, signature)

    async def initiate_dispute(self, tx_id: str, participant: str, timestamp: int,
                               participant_signature: OptionalSignature,
                               verifier: OptionalSignature):
        return await self._call(M_INITIATE_DISPUTE, tx_id, participant, timestamp,
                                participant_signature.to_wire(), verifier.to_wire())

    async def resolve_dispute(self, tx_id: str, comments: str, amount_a: int, amount_b: int,
                              timestamp: int, signature: str):
        return await self._call(M_RESOLVE_DISPUTE, tx_id, comments, amount_a, amount_b,
                                timestamp, signature)

    async def sign_with_schnorr(self, tx_id: str):
        """Ask the ledger for its threshold signature over a transaction."""
        return await self._call(M_SIGN_WITH_SCHNORR, tx_id)

    # --- Queries ---

    async def get_transaction_details(self, tx_id: str):
        """Ledger option encoding: [record] or []."""
        return await self._call(M_TRANSACTION_DETAILS, tx_id)

    async def get_proof_details(self, tx_id: str) -> str:
        """JSON proof text, or "" when the transaction has none."""
        return await self._call(M_PROOF_DETAILS, tx_id)

    async def get_principal(self) -> str:
        return await self._call(M_PRINCIPAL)

    async def get_public_key(self):
        return await self._call(M_PUBLIC_KEY)

    async def get_sign_with_schnorr_content(self, tx_id: str):
        return await self._call(M_SIGN_WITH_SCHNORR_CONTENT, tx_id)
