# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""API client for the guarantee relay.

Thin HTTP client with a pluggable transport interface.
Default transport: HTTP with optional bearer authentication.

Callers never sign anything for verifier- or arbitrator-attested steps;
the relay does. Participant signatures for trading and disputes are
optional pass-throughs.
"""

from abc import ABC, abstractmethod

import httpx

from protocol import EscrowMode


class Transport(ABC):
    """Override this to reach the relay some other way (ASGI, test doubles)."""

    @abstractmethod
    async def post(self, path: str, data: dict) -> dict:
        ...

    @abstractmethod
    async def get(self, path: str) -> dict:
        ...


class HTTPTransport(Transport):
    """Default. Talks to a relay over HTTP."""

    def __init__(self, base_url: str = "http://localhost:3000", api_key: str = "",
                 timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict:
        h = {"Content-Type": "application/json"}
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    async def post(self, path: str, data: dict) -> dict:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{self.base_url}{path}",
                json=data,
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()

    async def get(self, path: str) -> dict:
        async with httpx.AsyncClient() as client:
            resp = await client.get(
                f"{self.base_url}{path}",
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()


class RelayClient:
    """High-level client for the relay's escrow endpoints."""

    def __init__(self, transport: Transport | None = None,
                 base_url: str = "http://localhost:3000", api_key: str = ""):
        self.transport = transport or HTTPTransport(base_url, api_key=api_key)

    async def initialize(self, participant_a: str, participant_b: str,
                         amount_a: int, amount_b: int,
                         mode: EscrowMode = EscrowMode.SETTLEMENT,
                         comments: str | None = None,
                         stake_duration: int | None = None,
                         trade_duration: int | None = None) -> str:
        """Create an escrow transaction. Returns its id."""
        body = {
            "escrowMode": mode.value,
            "participantASolanaAddress": participant_a,
            "participantBSolanaAddress": participant_b,
            # strings keep large amounts exact for any JSON consumer
            "participantAShouldStakeUSDCAmount": str(amount_a),
            "participantBShouldStakeUSDCAmount": str(amount_b),
        }
        if comments is not None:
            body["comments"] = comments
        if stake_duration is not None:
            body["stakeDuration"] = stake_duration
        if trade_duration is not None:
            body["tradeDuration"] = trade_duration
        resp = await self.transport.post("/initialize", body)
        return resp["txId"]

    async def confirm_staking(self, tx_id: str, participant: str) -> dict:
        return await self.transport.post("/confirmStaking", {
            "transactionId": tx_id,
            "participantSolanaAddress": participant,
        })

    async def confirm_trading(self, tx_id: str, signature_a: str | None = None,
                              signature_b: str | None = None) -> dict:
        """Without both participant signatures the relay's verifier signs."""
        body = {"transactionId": tx_id}
        if signature_a:
            body["participantASignature"] = signature_a
        if signature_b:
            body["participantBSignature"] = signature_b
        return await self.transport.post("/confirmTrading", body)

    async def confirm_settling(self, tx_id: str, participant: str) -> dict:
        return await self.transport.post("/confirmSettling", {
            "transactionId": tx_id,
            "participantSolanaAddress": participant,
        })

    async def initiate_dispute(self, tx_id: str, participant: str,
                               signature: str | None = None) -> dict:
        body = {"transactionId": tx_id, "participantSolanaAddress": participant}
        if signature:
            body["participantSignature"] = signature
        return await self.transport.post("/initiateDispute", body)

    async def resolve_dispute(self, tx_id: str, comments: str,
                              amount_a: int, amount_b: int) -> dict:
        return await self.transport.post("/resolveDispute", {
            "transactionId": tx_id,
            "comments": comments,
            "participantAWithdrawableUSDCAmount": str(amount_a),
            "participantBWithdrawableUSDCAmount": str(amount_b),
        })

    async def sign_with_schnorr(self, tx_id: str) -> str:
        resp = await self.transport.post("/signWithSchnorr", {"transactionId": tx_id})
        return resp["signature"]

    async def get_transaction(self, tx_id: str) -> dict:
        return await self.transport.get(f"/transaction/{tx_id}")

    async def get_proof(self, tx_id: str) -> dict:
        return await self.transport.get(f"/proof/{tx_id}")

    async def get_principal(self) -> str:
        resp = await self.transport.get("/canisterPrincipal")
        return resp["principal"]

    async def get_schnorr_public_key(self):
        resp = await self.transport.get("/schnorrPublicKey")
        return resp["key"]

    async def get_sign_with_schnorr_content(self, tx_id: str):
        resp = await self.transport.get(f"/signWithSchnorrContent/{tx_id}")
        return resp["content"]
