"""Tests for canonical.py: exact message bytes per operation kind."""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

import canonical
from canonical import (
    BUILDERS,
    disputing_message,
    parse_integer,
    require_text,
    resolving_message,
    settling_message,
    staking_message,
    trading_message,
)
from protocol import CanonicalizationError, OperationKind

P = "be2us-64aaa-aaaaa-qaabq-cai"


class TestGoldenMessages:
    def test_staking(self):
        msg = staking_message(P, "tx-1", "Vault", "PartyA", 1735689600)
        assert msg == f"{P}-tx-1-Staking-Vault-PartyA-1735689600"

    def test_trading_has_no_timestamp(self):
        assert trading_message(P, "tx-1") == f"{P}-tx-1-Trading"

    def test_settling(self):
        msg = settling_message(P, "tx-7", "Vault", "PartyB", 42)
        assert msg == f"{P}-tx-7-Settling-Vault-PartyB-42"

    def test_disputing_has_no_vault(self):
        msg = disputing_message(P, "tx-1", "PartyA", 1735689600)
        assert msg == f"{P}-tx-1-Disputing-PartyA-1735689600"

    def test_resolving(self):
        msg = resolving_message(P, "tx-1", 600000000, 400000000, 1735689600)
        assert msg == f"{P}-tx-1-Resolving-600000000-400000000-1735689600"

    def test_large_amounts_have_no_grouping(self):
        msg = resolving_message(P, "tx-1", 10**18, 0, 1)
        assert msg.endswith("-1000000000000000000-0-1")
        assert "," not in msg and "_" not in msg

    def test_string_amounts_match_int_amounts(self):
        assert (resolving_message(P, "tx-1", "600000000", "400000000", "5")
                == resolving_message(P, "tx-1", 600000000, 400000000, 5))

    def test_deterministic(self):
        a = staking_message(P, "tx-1", "Vault", "PartyA", 10)
        b = staking_message(P, "tx-1", "Vault", "PartyA", 10)
        assert a == b

    def test_kinds_never_collide(self):
        msgs = {
            staking_message(P, "tx-1", "V", "X", 1),
            settling_message(P, "tx-1", "V", "X", 1),
            trading_message(P, "tx-1"),
            disputing_message(P, "tx-1", "X", 1),
            resolving_message(P, "tx-1", 1, 1, 1),
        }
        assert len(msgs) == 5


class TestValidation:
    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_principal(self, value):
        with pytest.raises(CanonicalizationError, match="principal"):
            trading_message(value, "tx-1")

    def test_missing_tx_id(self):
        with pytest.raises(CanonicalizationError, match="transactionId"):
            staking_message(P, "", "Vault", "PartyA", 1)

    def test_missing_participant(self):
        with pytest.raises(CanonicalizationError, match="participantAddress"):
            disputing_message(P, "tx-1", None, 1)

    def test_whitespace_rejected(self):
        with pytest.raises(CanonicalizationError, match="whitespace"):
            staking_message(P, "tx-1", "Vault", "Party A", 1)

    def test_negative_amount(self):
        with pytest.raises(CanonicalizationError, match="negative"):
            resolving_message(P, "tx-1", -1, 0, 1)

    @pytest.mark.parametrize("value", ["1,000", "1e9", "-5", " 5", "12.5", "٣"])
    def test_non_decimal_strings(self, value):
        with pytest.raises(CanonicalizationError):
            parse_integer("amount", value)

    def test_bool_is_not_an_integer(self):
        with pytest.raises(CanonicalizationError):
            parse_integer("amount", True)

    def test_float_rejected(self):
        with pytest.raises(CanonicalizationError):
            parse_integer("amount", 1.0)

    def test_missing_integer(self):
        with pytest.raises(CanonicalizationError, match="required"):
            parse_integer("timestamp", None)

    def test_parse_integer_strips_leading_zeros(self):
        assert parse_integer("amount", "007") == 7

    def test_require_text_returns_value(self):
        assert require_text("x", "abc") == "abc"

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            require_text("x", "")


class TestBuilders:
    def test_every_kind_has_a_builder(self):
        assert set(BUILDERS) == set(OperationKind)

    def test_builders_are_the_public_functions(self):
        assert BUILDERS[OperationKind.TRADING] is canonical.trading_message
        assert BUILDERS[OperationKind.RESOLVING] is canonical.resolving_message
