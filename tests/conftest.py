import sys
import os

# Ensure the repo root is on the path for all tests
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from starlette.testclient import TestClient

from crypto import generate_keypair
from ledger import LedgerClient, StubLedger
from server.app import create_app


# Pre-generated test identities for the whole session
VERIFIER = generate_keypair()
ARBITRATOR = generate_keypair()

PRINCIPAL = "be2us-64aaa-aaaaa-qaabq-cai"
VAULT = "StakeVault_SolanaAddress"
PARTY_A = "ParticipantA_SolanaAddress"
PARTY_B = "ParticipantB_SolanaAddress"
AUTH_TOKEN = "s3cret-relay-token"

# Fixed clock so canonical messages are predictable
FIXED_TS = 1735689600


def fixed_clock() -> int:
    return FIXED_TS


def make_app(stub: StubLedger, **kwargs):
    """App wired to a stub ledger with the test identities and a fixed clock."""
    kwargs.setdefault("principal", PRINCIPAL)
    kwargs.setdefault("clock", fixed_clock)
    return create_app(
        ledger=LedgerClient(stub, timeout=kwargs.pop("timeout", 5.0)),
        verifier=VERIFIER,
        arbitrator=ARBITRATOR,
        vault_address=VAULT,
        **kwargs,
    )


@pytest.fixture
def stub():
    return StubLedger(principal=PRINCIPAL)


@pytest.fixture
def app(stub):
    return make_app(stub)


@pytest.fixture
def client(app):
    return TestClient(app)
