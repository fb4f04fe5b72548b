# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Shared constants, enums and errors for the guarantee relay.

All modules import from here to avoid circular dependencies.
"""

from enum import Enum

# --- Relay Constants ---

# Canonical message field delimiter. The ledger re-derives the exact string.
MESSAGE_DELIMITER = "-"

DEFAULT_COMMENTS = "normal transaction"
DEFAULT_STAKE_DURATION = 60 * 60 * 24       # 1 day
DEFAULT_TRADE_DURATION = 60 * 60 * 24 * 7   # 1 week

DEFAULT_LEDGER_HOST = "http://127.0.0.1:4943"
DEFAULT_LEDGER_TIMEOUT = 30.0  # seconds per ledger call
DEFAULT_PORT = 3000

# Ed25519 sizes (NaCl layout: secret = seed || public key)
PUBLIC_KEY_SIZE = 32
SEED_SIZE = 32
SECRET_KEY_SIZE = 64
SIGNATURE_SIZE = 64


# --- Escrow ---

class EscrowMode(Enum):
    SETTLEMENT = "Settlement"  # A's stake goes to B after settling
    MUTUAL = "Mutual"          # each stake returns to its owner


class EscrowStatus(Enum):
    """Ledger-side states. The relay never enforces these; it only names them."""
    CREATED = "Created"
    STAKE_PENDING_A = "StakePendingA"
    STAKE_PENDING_B = "StakePendingB"
    STAKED = "Staked"
    TRADE_PENDING = "TradePending"
    TRADED = "Traded"
    SETTLE_PENDING_A = "SettlePendingA"
    SETTLE_PENDING_B = "SettlePendingB"
    SETTLED = "Settled"
    DISPUTED = "Disputed"
    RESOLVED = "Resolved"


# --- Attestation ---

class OperationKind(Enum):
    STAKING = "Staking"
    TRADING = "Trading"
    SETTLING = "Settling"
    DISPUTING = "Disputing"
    RESOLVING = "Resolving"


class Role(Enum):
    VERIFIER = "verifier"
    ARBITRATOR = "arbitrator"
    PARTICIPANT = "participant"


class ProtocolVersion(Enum):
    """Route wiring revision.

    v1 passes ledger records through untouched (deprecated).
    v2 reshapes transaction details into plain JSON.
    Canonical messages are identical in both.
    """
    V1 = "v1"
    V2 = "v2"


# --- Errors ---

class RelayError(Exception):
    """Base class for every error the relay raises on purpose."""


class ConfigurationError(RelayError):
    """Missing or invalid required setting. Fatal at startup."""


class AuthError(RelayError):
    """Bad or missing bearer token."""


class StorageError(RelayError):
    """Identity file could not be read or written."""


class CorruptKeyError(RelayError):
    """Identity file exists but its contents are unusable."""


class CanonicalizationError(RelayError, ValueError):
    """A canonical message field is missing or malformed."""


class EmptyMessageError(RelayError, ValueError):
    """Refusing to sign an empty message."""


class RemoteError(RelayError):
    """The ledger rejected the call or could not be reached."""


class RemoteTimeoutError(RelayError):
    """The ledger did not answer within the per-call timeout."""
