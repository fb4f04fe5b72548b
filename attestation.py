# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Attestation policy: who signs each lifecycle transition.

Three shapes:
- Verifier-custodied (Staking, Settling): the relay's verifier always signs.
- Dual path (Trading, Disputing): callers may bring participant signatures.
  If every required one is supplied they are forwarded verbatim and the
  verifier slot stays empty. If any is missing the verifier signs instead and
  every participant slot is sent empty. Mixed combinations are never sent.
- Arbitrator (Resolving): always signed locally by the arbitrator. There is
  no way to pass a caller signature through.
"""

import time
from dataclasses import dataclass
from typing import Callable, Union

import canonical
from crypto import KeyPair, sign_message
from protocol import OperationKind, Role, CanonicalizationError


def now() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


# --- Optional signatures ---

@dataclass(frozen=True)
class Supplied:
    """A caller-provided participant signature, forwarded verbatim."""
    signature: str

    def to_wire(self) -> list:
        return [self.signature]


class Absent:
    """No signature in this slot."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def to_wire(self) -> list:
        return []


ABSENT = Absent()

OptionalSignature = Union[Supplied, Absent]


def signature_from(name: str, value) -> OptionalSignature:
    """Lift a request field into the Supplied/Absent union.

    None and "" mean absent.
    """
    if value is None or value == "":
        return ABSENT
    if not isinstance(value, str):
        raise CanonicalizationError(f"{name} must be a string")
    return Supplied(value)


# --- Results ---

@dataclass(frozen=True)
class Attestation:
    message: str
    signature: str
    signer_role: Role


@dataclass(frozen=True)
class TimedAttestation:
    """A locally produced attestation plus the timestamp embedded in it."""
    timestamp: int
    attestation: Attestation


@dataclass(frozen=True)
class TradingSignatures:
    participant_a: OptionalSignature
    participant_b: OptionalSignature
    verifier: OptionalSignature
    attestation: Attestation | None = None


@dataclass(frozen=True)
class DisputeSignatures:
    timestamp: int
    participant: OptionalSignature
    verifier: OptionalSignature
    attestation: Attestation | None = None


class AttestationPolicy:
    """Prepares signed ledger arguments for each lifecycle call.

    Holds the two long-lived identities and the vault address; all of them
    are read-only after construction so one policy serves concurrent requests.
    """

    def __init__(self, verifier: KeyPair, arbitrator: KeyPair, vault_address: str,
                 clock: Callable[[], int] | None = None):
        self.verifier = verifier
        self.arbitrator = arbitrator
        self.vault_address = canonical.require_text("vaultAddress", vault_address)
        self.clock = clock or now

    def _attest(self, kind: OperationKind, role: Role, principal: str, tx_id: str,
                *fields) -> Attestation:
        identity = self.arbitrator if role is Role.ARBITRATOR else self.verifier
        message = canonical.BUILDERS[kind](principal, tx_id, *fields)
        return Attestation(message, sign_message(message, identity), role)

    # --- Verifier-custodied ---

    def confirm_staking(self, principal: str, tx_id: str, participant: str) -> TimedAttestation:
        ts = self.clock()
        att = self._attest(OperationKind.STAKING, Role.VERIFIER, principal, tx_id,
                           self.vault_address, participant, ts)
        return TimedAttestation(ts, att)

    def confirm_settling(self, principal: str, tx_id: str, participant: str) -> TimedAttestation:
        ts = self.clock()
        att = self._attest(OperationKind.SETTLING, Role.VERIFIER, principal, tx_id,
                           self.vault_address, participant, ts)
        return TimedAttestation(ts, att)

    # --- Dual path ---

    def confirm_trading(self, principal: str, tx_id: str,
                        signature_a: OptionalSignature,
                        signature_b: OptionalSignature) -> TradingSignatures:
        if isinstance(signature_a, Supplied) and isinstance(signature_b, Supplied):
            canonical.require_text("transactionId", tx_id)
            return TradingSignatures(signature_a, signature_b, ABSENT)
        att = self._attest(OperationKind.TRADING, Role.VERIFIER, principal, tx_id)
        return TradingSignatures(ABSENT, ABSENT, Supplied(att.signature), att)

    def initiate_dispute(self, principal: str, tx_id: str, participant: str,
                         participant_signature: OptionalSignature) -> DisputeSignatures:
        ts = self.clock()
        if isinstance(participant_signature, Supplied):
            canonical.require_text("transactionId", tx_id)
            canonical.require_text("participantAddress", participant)
            return DisputeSignatures(ts, participant_signature, ABSENT)
        att = self._attest(OperationKind.DISPUTING, Role.VERIFIER, principal, tx_id,
                           participant, ts)
        return DisputeSignatures(ts, ABSENT, Supplied(att.signature), att)

    # --- Arbitrator ---

    def resolve_dispute(self, principal: str, tx_id: str, amount_a: int,
                        amount_b: int) -> TimedAttestation:
        ts = self.clock()
        att = self._attest(OperationKind.RESOLVING, Role.ARBITRATOR, principal, tx_id,
                           amount_a, amount_b, ts)
        return TimedAttestation(ts, att)
