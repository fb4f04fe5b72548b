# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""HTTP API for the guarantee relay (FastAPI).

Endpoints for the escrow lifecycle: initialize, confirm staking / trading /
settling, initiate and resolve disputes, plus pass-through ledger queries.

Each request performs at most one ledger call. Signing happens locally
through AttestationPolicy before that call; nothing is retried and the
ledger's answer is passed back as-is (or reshaped, depending on the
protocol version).

Optional bearer auth gates every route before any signing or ledger work.
"""

import hmac
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictInt, StrictStr
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

import canonical
from attestation import AttestationPolicy, signature_from
from crypto import KeyPair
from ledger import LedgerClient
from protocol import (
    DEFAULT_COMMENTS, DEFAULT_STAKE_DURATION, DEFAULT_TRADE_DURATION,
    EscrowMode, ProtocolVersion,
    AuthError, CanonicalizationError, EmptyMessageError,
    RemoteError, RemoteTimeoutError,
)

log = logging.getLogger("relay.api")

# JSON true or 4.0 must not coerce into an amount
Integer = Union[StrictInt, StrictStr]


# --- Request models (wire field names kept for existing callers) ---

class InitializeRequest(BaseModel):
    escrowMode: Optional[str] = None
    comments: Optional[str] = None
    participantASolanaAddress: str
    participantBSolanaAddress: str
    participantAShouldStakeUSDCAmount: Integer
    participantBShouldStakeUSDCAmount: Integer
    stakeDuration: Optional[Integer] = None
    tradeDuration: Optional[Integer] = None

class ParticipantRequest(BaseModel):
    transactionId: str
    participantSolanaAddress: str

class TradingRequest(BaseModel):
    transactionId: str
    participantASignature: Optional[str] = None
    participantBSignature: Optional[str] = None

class DisputeRequest(BaseModel):
    transactionId: str
    participantSolanaAddress: str
    participantSignature: Optional[str] = None

class ResolveRequest(BaseModel):
    transactionId: str
    comments: str
    participantAWithdrawableUSDCAmount: Integer
    participantBWithdrawableUSDCAmount: Integer

class TransactionRequest(BaseModel):
    transactionId: str


# --- Context ---

@dataclass
class RelayContext:
    """Everything a request handler needs. Read-only once the app has started."""
    ledger: LedgerClient
    policy: AttestationPolicy
    verifier_public_key: str
    arbitrator_public_key: str
    protocol_version: ProtocolVersion = ProtocolVersion.V2
    principal: str | None = None


# --- Auth gate ---

def check_bearer(authorization: str | None, expected_token: str) -> None:
    """Raise AuthError unless the header is 'Bearer <expected_token>'."""
    auth = authorization or ""
    if not auth.lower().startswith("bearer "):
        raise AuthError("Missing bearer token")
    token = auth[7:].strip()
    if not token or not hmac.compare_digest(token.encode(), expected_token.encode()):
        raise AuthError("Bearer token mismatch")


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Reject every request without the configured bearer token (401)."""

    def __init__(self, app, *, token: str):
        super().__init__(app)
        self._token = token

    async def dispatch(self, request: Request, call_next: Callable):
        try:
            check_bearer(request.headers.get("authorization"), self._token)
        except AuthError as e:
            log.info("Unauthorized %s %s: %s", request.method, request.url.path, e)
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        return await call_next(request)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One log line per request. Bodies are never logged."""

    async def dispatch(self, request: Request, call_next: Callable):
        start = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            log.info("%s %s -> %s (%dms)", request.method, request.url.path, status_code,
                     int((time.monotonic() - start) * 1000))


# --- Response shaping ---

def _stringify_ints(value):
    """Ledger integers (nat64 and friends) go out as decimal strings."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {k: _stringify_ints(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify_ints(v) for v in value]
    return value


def _variant_name(value):
    """{"Staked": null} -> "Staked"."""
    if isinstance(value, dict) and len(value) == 1:
        return next(iter(value))
    return value


def reshape_transaction(record: dict) -> dict:
    details = _stringify_ints(record)
    for key in ("status", "escrowMode"):
        if key in details:
            details[key] = _variant_name(details[key])
    return details


def _parse_mode(value: str | None) -> EscrowMode:
    if value is None:
        return EscrowMode.SETTLEMENT
    try:
        return EscrowMode(value)
    except ValueError:
        raise CanonicalizationError(
            f"escrowMode must be one of {', '.join(m.value for m in EscrowMode)}"
        )


def _parse_optional_integer(name: str, value, default: int) -> int:
    if value is None:
        return default
    return canonical.parse_integer(name, value)


# --- App factory ---

def create_app(
    ledger: LedgerClient,
    verifier: KeyPair,
    arbitrator: KeyPair,
    vault_address: str,
    auth_token: str | None = None,
    principal: str | None = None,
    protocol_version: ProtocolVersion = ProtocolVersion.V2,
    clock: Callable[[], int] | None = None,
) -> FastAPI:
    """Create the FastAPI app with injected dependencies.

    If principal is not provided it is fetched from the ledger once at
    startup, so lifecycle requests never spend their single ledger call on it.
    auth_token=None disables the bearer gate.
    """

    ctx = RelayContext(
        ledger=ledger,
        policy=AttestationPolicy(verifier, arbitrator, vault_address, clock=clock),
        verifier_public_key=verifier.public_key,
        arbitrator_public_key=arbitrator.public_key,
        protocol_version=protocol_version,
        principal=principal,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if ctx.principal is None:
            ctx.principal = await ctx.ledger.get_principal()
            log.info("Ledger principal: %s", ctx.principal)
        try:
            yield
        finally:
            await ctx.ledger.aclose()

    app = FastAPI(title="Guarantee Relay", version="1.0", lifespan=lifespan)

    # Starlette runs the last-added middleware first: access log wraps auth.
    if auth_token:
        app.add_middleware(BearerAuthMiddleware, token=auth_token)
    else:
        log.warning("Bearer auth disabled: every request is accepted")
    app.add_middleware(AccessLogMiddleware)

    # Expose for testing
    app.state.relay = ctx

    # --- Error mapping ---

    @app.exception_handler(CanonicalizationError)
    async def bad_field(request: Request, exc: CanonicalizationError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def bad_body(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
            for err in exc.errors()
        )
        return JSONResponse({"error": problems or "Invalid request body"}, status_code=400)

    @app.exception_handler(RemoteError)
    async def ledger_rejected(request: Request, exc: RemoteError):
        return JSONResponse({"error": str(exc)}, status_code=502)

    @app.exception_handler(RemoteTimeoutError)
    async def ledger_timeout(request: Request, exc: RemoteTimeoutError):
        return JSONResponse({"error": str(exc)}, status_code=504)

    @app.exception_handler(EmptyMessageError)
    async def empty_message(request: Request, exc: EmptyMessageError):
        log.error("Canonical message came out empty on %s", request.url.path)
        return JSONResponse({"error": "Internal attestation error"}, status_code=500)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    def _principal() -> str:
        if ctx.principal is None:
            raise HTTPException(503, "Ledger principal not resolved yet")
        return ctx.principal

    # --- Lifecycle ---

    @app.post("/initialize")
    async def initialize(req: InitializeRequest):
        """Create an escrow transaction.

        Settlement mode (default) moves A's stake to B after settling;
        Mutual mode returns each stake to its owner. Durations are seconds
        before the stake and trade timeouts.
        """
        mode = _parse_mode(req.escrowMode)
        party_a = canonical.require_text("participantASolanaAddress", req.participantASolanaAddress)
        party_b = canonical.require_text("participantBSolanaAddress", req.participantBSolanaAddress)
        amount_a = canonical.parse_integer("participantAShouldStakeUSDCAmount",
                                           req.participantAShouldStakeUSDCAmount)
        amount_b = canonical.parse_integer("participantBShouldStakeUSDCAmount",
                                           req.participantBShouldStakeUSDCAmount)
        stake_duration = _parse_optional_integer("stakeDuration", req.stakeDuration,
                                                 DEFAULT_STAKE_DURATION)
        trade_duration = _parse_optional_integer("tradeDuration", req.tradeDuration,
                                                 DEFAULT_TRADE_DURATION)

        tx_id = await ctx.ledger.initialize(
            mode,
            req.comments if req.comments is not None else DEFAULT_COMMENTS,
            party_a, party_b, amount_a, amount_b,
            ctx.verifier_public_key, ctx.arbitrator_public_key,
            stake_duration, trade_duration,
        )
        log.info("Initialized transaction %s (%s)", tx_id, mode.value)
        return {"txId": tx_id}

    @app.post("/confirmStaking")
    async def confirm_staking(req: ParticipantRequest):
        """Verifier attests that a participant's stake reached the vault."""
        signed = ctx.policy.confirm_staking(_principal(), req.transactionId,
                                            req.participantSolanaAddress)
        await ctx.ledger.confirm_staking_complete(
            req.transactionId, ctx.policy.vault_address, req.participantSolanaAddress,
            signed.timestamp, signed.attestation.signature,
        )
        return {"success": True}

    @app.post("/confirmTrading")
    async def confirm_trading(req: TradingRequest):
        """Confirm the trade: both participant signatures, or the verifier's."""
        sigs = ctx.policy.confirm_trading(
            _principal(), req.transactionId,
            signature_from("participantASignature", req.participantASignature),
            signature_from("participantBSignature", req.participantBSignature),
        )
        await ctx.ledger.confirm_trading_complete(
            req.transactionId, sigs.participant_a, sigs.participant_b, sigs.verifier,
        )
        return {"success": True}

    @app.post("/confirmSettling")
    async def confirm_settling(req: ParticipantRequest):
        """Verifier attests that a participant's payout left the vault."""
        signed = ctx.policy.confirm_settling(_principal(), req.transactionId,
                                             req.participantSolanaAddress)
        await ctx.ledger.confirm_settling_complete(
            req.transactionId, ctx.policy.vault_address, req.participantSolanaAddress,
            signed.timestamp, signed.attestation.signature,
        )
        return {"success": True}

    @app.post("/initiateDispute")
    async def initiate_dispute(req: DisputeRequest):
        """Raise a dispute, signed by the participant or else by the verifier."""
        sigs = ctx.policy.initiate_dispute(
            _principal(), req.transactionId, req.participantSolanaAddress,
            signature_from("participantSignature", req.participantSignature),
        )
        await ctx.ledger.initiate_dispute(
            req.transactionId, req.participantSolanaAddress, sigs.timestamp,
            sigs.participant, sigs.verifier,
        )
        return {"success": True}

    @app.post("/resolveDispute")
    async def resolve_dispute(req: ResolveRequest):
        """Arbitrator splits the stakes into withdrawable amounts for A and B."""
        amount_a = canonical.parse_integer("participantAWithdrawableUSDCAmount",
                                           req.participantAWithdrawableUSDCAmount)
        amount_b = canonical.parse_integer("participantBWithdrawableUSDCAmount",
                                           req.participantBWithdrawableUSDCAmount)
        signed = ctx.policy.resolve_dispute(_principal(), req.transactionId, amount_a, amount_b)
        await ctx.ledger.resolve_dispute(
            req.transactionId, req.comments, amount_a, amount_b,
            signed.timestamp, signed.attestation.signature,
        )
        return {"success": True}

    @app.post("/signWithSchnorr")
    async def sign_with_schnorr(req: TransactionRequest):
        """Ledger-held signature over the settled escrow payload."""
        tx_id = canonical.require_text("transactionId", req.transactionId)
        signature = await ctx.ledger.sign_with_schnorr(tx_id)
        return {"signature": signature}

    # --- Queries ---

    @app.get("/schnorrPublicKey")
    async def schnorr_public_key():
        key = await ctx.ledger.get_public_key()
        return {"key": key}

    @app.get("/signWithSchnorrContent/{tx_id}")
    async def sign_with_schnorr_content(tx_id: str):
        content = await ctx.ledger.get_sign_with_schnorr_content(tx_id)
        return {"content": content}

    @app.get("/canisterPrincipal")
    async def canister_principal():
        principal = await ctx.ledger.get_principal()
        return {"principal": principal}

    @app.get("/transaction/{tx_id}")
    async def get_transaction(tx_id: str):
        """Escrow transaction details, fresh from the ledger."""
        details = await ctx.ledger.get_transaction_details(tx_id)
        if ctx.protocol_version is ProtocolVersion.V1:
            return JSONResponse(details)
        if isinstance(details, list):
            if not details:
                raise HTTPException(404, "not found")
            details = details[0]
        if not isinstance(details, dict):
            raise RemoteError("getTransactionDetails: unexpected record shape")
        return reshape_transaction(details)

    @app.get("/proof/{tx_id}")
    async def get_proof(tx_id: str):
        """Proof payload attached to a transaction, if any."""
        proof = await ctx.ledger.get_proof_details(tx_id)
        if not proof:
            raise HTTPException(404, "not found")
        try:
            return JSONResponse(json.loads(proof))
        except (TypeError, ValueError):
            raise RemoteError("getProofDetails: proof is not valid JSON")

    return app
