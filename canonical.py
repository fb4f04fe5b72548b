# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Canonical attestation messages for escrow lifecycle transitions.

The ledger rebuilds each message from the call arguments and checks the
signature against it, so every byte here is part of the wire contract:

    Staking    {principal}-{txId}-Staking-{vault}-{participant}-{ts}
    Trading    {principal}-{txId}-Trading
    Settling   {principal}-{txId}-Settling-{vault}-{participant}-{ts}
    Disputing  {principal}-{txId}-Disputing-{participant}-{ts}
    Resolving  {principal}-{txId}-Resolving-{amountA}-{amountB}-{ts}

Integers are base-10 with no grouping and no leading zeros. Every field is
mandatory; deciding who signs what is attestation.py's job.
"""

from protocol import MESSAGE_DELIMITER, OperationKind, CanonicalizationError


def require_text(name: str, value) -> str:
    """Validate an address or identifier field."""
    if not isinstance(value, str) or not value:
        raise CanonicalizationError(f"{name} is required")
    if any(c.isspace() for c in value):
        raise CanonicalizationError(f"{name} must not contain whitespace")
    return value


def parse_integer(name: str, value) -> int:
    """Parse a non-negative integer given as int or ASCII digit string."""
    if isinstance(value, bool):
        raise CanonicalizationError(f"{name} must be an integer")
    if isinstance(value, int):
        if value < 0:
            raise CanonicalizationError(f"{name} must not be negative")
        return value
    if isinstance(value, str) and value and value.isascii() and value.isdigit():
        return int(value)
    if value is None or value == "":
        raise CanonicalizationError(f"{name} is required")
    raise CanonicalizationError(f"{name} must be a base-10 integer, got {value!r}")


def _join(principal, tx_id, kind: OperationKind, *fields: str) -> str:
    parts = [require_text("principal", principal), require_text("transactionId", tx_id), kind.value]
    parts.extend(fields)
    return MESSAGE_DELIMITER.join(parts)


def staking_message(principal: str, tx_id: str, vault_address: str,
                    participant: str, timestamp: int) -> str:
    return _join(
        principal, tx_id, OperationKind.STAKING,
        require_text("vaultAddress", vault_address),
        require_text("participantAddress", participant),
        str(parse_integer("timestamp", timestamp)),
    )


def trading_message(principal: str, tx_id: str) -> str:
    # confirmTradingComplete carries no timestamp, so the ledger cannot re-derive one.
    return _join(principal, tx_id, OperationKind.TRADING)


def settling_message(principal: str, tx_id: str, vault_address: str,
                     participant: str, timestamp: int) -> str:
    return _join(
        principal, tx_id, OperationKind.SETTLING,
        require_text("vaultAddress", vault_address),
        require_text("participantAddress", participant),
        str(parse_integer("timestamp", timestamp)),
    )


def disputing_message(principal: str, tx_id: str, participant: str, timestamp: int) -> str:
    return _join(
        principal, tx_id, OperationKind.DISPUTING,
        require_text("participantAddress", participant),
        str(parse_integer("timestamp", timestamp)),
    )


def resolving_message(principal: str, tx_id: str, amount_a: int, amount_b: int,
                      timestamp: int) -> str:
    return _join(
        principal, tx_id, OperationKind.RESOLVING,
        str(parse_integer("participantAWithdrawableAmount", amount_a)),
        str(parse_integer("participantBWithdrawableAmount", amount_b)),
        str(parse_integer("timestamp", timestamp)),
    )


BUILDERS = {
    OperationKind.STAKING: staking_message,
    OperationKind.TRADING: trading_message,
    OperationKind.SETTLING: settling_message,
    OperationKind.DISPUTING: disputing_message,
    OperationKind.RESOLVING: resolving_message,
}


# Every operation kind needs its own explicit builder.
def _check_builders():
    missing = [k.value for k in OperationKind if k not in BUILDERS]
    if missing:
        raise RuntimeError(f"No canonical message builder for: {', '.join(missing)}")

_check_builders()
del _check_builders
