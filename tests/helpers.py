"""
helpers.py - Shared constants and helper functions for token sale tests
"""

from datetime import datetime
from decimal import Decimal

from tokensale import Ledger, ContractRuntime, SYSTEM_WALLET
from tokensale.units import compute_transfer, total_supply


START = datetime(2025, 1, 1)

TOKEN_SUPPLY = 10_000_000
TOKEN_DECIMALS = 18
SALE_RATE = 500
SALE_DAYS = 30
# Seconds past creation at which a 30 day sale is over
PAST_DEADLINE = SALE_DAYS * 86400 + 1


def stock_sale(runtime: ContractRuntime, token: str, sale: str, owner: str, amount) -> None:
    """Move amount tokens from owner into the sale's inventory."""
    runtime.call(compute_transfer, token, owner, sale, amount)


def assert_token_conserved(ledger: Ledger, token: str) -> None:
    """total_supply == sum of non-system balances == -balance(SYSTEM_WALLET)."""
    positions = ledger.get_positions(token)
    held = sum(
        (qty for wallet, qty in positions.items() if wallet != SYSTEM_WALLET),
        Decimal("0"),
    )
    supply = total_supply(ledger, token)
    assert held == supply
    assert -ledger.get_balance(SYSTEM_WALLET, token) == supply
    assert ledger.verify_double_entry()['valid']


def snapshot_balances(ledger: Ledger) -> dict:
    """Every non-zero balance, keyed by (wallet, unit)."""
    return {
        (wallet, unit): qty
        for unit in ledger.list_units()
        for wallet, qty in ledger.get_positions(unit).items()
    }


def fresh_runtime() -> ContractRuntime:
    """New runtime over an empty test ledger, for use inside hypothesis examples."""
    return ContractRuntime(Ledger("test", START, verbose=False, test_mode=True))
