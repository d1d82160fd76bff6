"""
conftest.py - Shared pytest fixtures for token sale tests

Provides common fixtures used across unit, conformance and functional tests:
- Basic ledgers and runtimes
- Funded accounts
- Deployed token, crowdsale and airdrop contracts
"""

import pytest

from tokensale import Ledger, ContractRuntime, ContractFactory
from tokensale.units import compute_transfer

from tests.helpers import (
    START, TOKEN_SUPPLY, TOKEN_DECIMALS, SALE_RATE, SALE_DAYS,
    stock_sale,
)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Empty ledger in test mode, clock at START."""
    return Ledger("test", START, verbose=False, test_mode=True)


@pytest.fixture
def runtime(ledger):
    """Runtime over the test ledger with ETH registered."""
    return ContractRuntime(ledger)


@pytest.fixture
def factory(runtime):
    return ContractFactory(runtime)


@pytest.fixture
def funded(runtime):
    """Runtime with bob, carol and dave holding 100 ETH each."""
    for who in ("bob", "carol", "dave"):
        runtime.fund(who, 100)
    return runtime


# =============================================================================
# CONTRACT FIXTURES
# =============================================================================

@pytest.fixture
def token(factory):
    """Burnable token owned by alice, full supply credited to alice."""
    return factory.deploy_burnable_token(
        "alice", TOKEN_SUPPLY, TOKEN_DECIMALS, "Sale Token", "SALE"
    )


@pytest.fixture
def mintable_token(factory):
    return factory.deploy_mintable_burnable_token(
        "alice", TOKEN_SUPPLY, TOKEN_DECIMALS, "Flexible Token", "FLEX"
    )


@pytest.fixture
def sale(funded, factory, token):
    """
    Active sale of token at rate 500 with a soft cap of 5 ETH,
    stocked with 1,000,000 tokens.
    """
    address = factory.deploy_ico("alice", token, TOKEN_DECIMALS, 5, SALE_RATE, SALE_DAYS)
    stock_sale(funded, token, address, "alice", 1_000_000)
    return address


@pytest.fixture
def high_cap_sale(funded, factory, token):
    """Sale whose soft cap (5e18) cannot be met by the funded accounts."""
    address = factory.deploy_ico("alice", token, TOKEN_DECIMALS, 5 * 10**18, SALE_RATE, SALE_DAYS)
    stock_sale(funded, token, address, "alice", 1_000_000)
    return address


@pytest.fixture
def airdrop(factory, runtime, token):
    """Airdrop contract for token, holding 10,000 tokens."""
    address = factory.deploy_airdrop("alice", token)
    runtime.call(compute_transfer, token, "alice", address, 10_000)
    return address
