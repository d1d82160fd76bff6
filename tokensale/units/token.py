"""
token.py - Fungible Token Ledger

This module provides the token contract as a Unit plus pure operations:
1. create_token_unit() - Factory for a token with optional mint/burn rights
2. compute_issuance() - Credit the initial supply to the owner
3. compute_transfer() / compute_approve() / compute_transfer_from() - ERC-20 style moves
4. compute_mint() / compute_burn() - Owner-only supply changes
5. Read operations - balance_of, allowance, total_supply, metadata getters

Balances live in the ledger under the token's address. Issuance is a debit of
SYSTEM_WALLET, so at all times:

    total_supply == sum of non-system balances == -balance(SYSTEM_WALLET)

Allowances and metadata live in the unit state:
    {
        'name': 'Sale Token', 'symbol': 'SALE', 'decimals': 18,
        'mintable': False, 'burnable': True, 'owner': 'alice',
        'total_supply': Decimal('10000000'),
        'allowances': {'alice': {'bob': Decimal('50')}},
    }

All functions take LedgerView (read-only) and return immutable results.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Any, List

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    SYSTEM_WALLET, UNIT_TYPE_TOKEN,
    InsufficientBalance, InsufficientAllowance,
    MintingDisabled, BurningDisabled,
    build_transaction, call_origin, missing_wallets, null_recipient_rule,
    require_identity, to_amount,
)
from ..access import require_owner


def create_token_unit(
    address: str,
    total_supply,
    decimals: int,
    name: str,
    symbol: str,
    mintable: bool,
    burnable: bool,
    owner: str,
) -> Unit:
    """
    Create a token unit.

    The unit only describes the token. The initial supply is credited to the
    owner by compute_issuance() (or by the factory in the deployment
    transaction).

    Args:
        address: Contract address, used as the unit symbol
        total_supply: Initial supply in base units
        decimals: Display precision (metadata only)
        name: Token name
        symbol: Ticker
        mintable: Whether the owner may mint later
        burnable: Whether the owner may burn later
        owner: Identity credited with the initial supply

    Raises:
        ValueError: If total_supply or decimals are invalid, or metadata is empty
        InvalidRecipient: If owner is null or reserved
    """
    supply = to_amount(total_supply, "total_supply")
    if not isinstance(decimals, int) or isinstance(decimals, bool) or decimals < 0:
        raise ValueError(f"decimals must be a non-negative integer, got {decimals!r}")
    if not name or not name.strip():
        raise ValueError("name cannot be empty")
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    require_identity(owner)

    state = {
        'name': name,
        'symbol': symbol,
        'decimals': decimals,
        'mintable': bool(mintable),
        'burnable': bool(burnable),
        'owner': owner,
        'total_supply': supply,
        'allowances': {},
    }
    return Unit(
        symbol=address,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        min_balance=Decimal("0"),
        decimal_places=0,
        transfer_rule=null_recipient_rule,
        _frozen_state=tuple(sorted(state.items())),
    )


def issuance_moves(unit: Unit) -> List[Move]:
    """Moves crediting a freshly created token's supply to its owner."""
    state = unit.state
    if state['total_supply'] == 0:
        return []
    return [Move(
        quantity=state['total_supply'],
        unit_symbol=unit.symbol,
        source=SYSTEM_WALLET,
        dest=state['owner'],
        contract_id=f'issue_{unit.symbol}',
    )]


def compute_issuance(view: LedgerView, token: str) -> PendingTransaction:
    """
    Credit the initial supply of a registered token to its owner.

    Raises:
        ValueError: If the supply was already issued
    """
    if view.get_balance(SYSTEM_WALLET, token) != 0:
        raise ValueError(f"{token}: initial supply already issued")
    unit = view.get_unit(token)
    owner = unit.state['owner']
    return build_transaction(
        view, issuance_moves(unit), [],
        call_origin(view, owner, token, "ISSUE"),
        wallets_to_create=missing_wallets(view, owner),
    )


def _token_move(token: str, source: str, dest: str, amount: Decimal, tag: str) -> List[Move]:
    if amount == 0 or source == dest:
        return []
    return [Move(
        quantity=amount,
        unit_symbol=token,
        source=source,
        dest=dest,
        contract_id=f'{tag}_{token}',
    )]


def compute_transfer(
    view: LedgerView,
    token: str,
    caller: str,
    to: str,
    amount,
) -> PendingTransaction:
    """
    Transfer amount tokens from caller to to.

    A zero amount (or a transfer to oneself) succeeds without moving anything.

    Raises:
        ValueError: If amount is negative or fractional
        InvalidRecipient: If to is null or reserved
        InsufficientBalance: If caller holds less than amount
    """
    amount = to_amount(amount)
    require_identity(to)
    balance = view.get_balance(caller, token)
    if balance < amount:
        raise InsufficientBalance(
            f"{token}: {caller} holds {balance}, cannot transfer {amount}"
        )
    return build_transaction(
        view, _token_move(token, caller, to, amount, 'transfer'), [],
        call_origin(view, caller, token, "TRANSFER"),
        wallets_to_create=missing_wallets(view, to),
    )


def compute_approve(
    view: LedgerView,
    token: str,
    caller: str,
    spender: str,
    amount,
) -> PendingTransaction:
    """
    Set spender's allowance over caller's tokens to exactly amount.

    Raises:
        ValueError: If amount is negative or fractional
        InvalidRecipient: If spender is null or reserved
    """
    amount = to_amount(amount)
    require_identity(spender)

    state = view.get_unit_state(token)
    allowances = state['allowances']
    allowances.setdefault(caller, {})[spender] = amount
    new_state = {**state, 'allowances': allowances}
    changes = [UnitStateChange(unit=token, old_state=view.get_unit_state(token), new_state=new_state)]
    return build_transaction(
        view, [], changes, call_origin(view, caller, token, "APPROVE")
    )


def compute_transfer_from(
    view: LedgerView,
    token: str,
    caller: str,
    owner: str,
    to: str,
    amount,
) -> PendingTransaction:
    """
    Spend caller's allowance to move amount tokens from owner to to.

    The allowance is decremented by exactly amount, once.

    Raises:
        ValueError: If amount is negative or fractional
        InvalidRecipient: If to is null or reserved
        InsufficientAllowance: If owner allowed caller less than amount
        InsufficientBalance: If owner holds less than amount
    """
    amount = to_amount(amount)
    require_identity(to)

    state = view.get_unit_state(token)
    allowances = state['allowances']
    allowed = allowances.get(owner, {}).get(caller, Decimal("0"))
    if allowed < amount:
        raise InsufficientAllowance(
            f"{token}: {caller} may spend {allowed} of {owner}, requested {amount}"
        )
    balance = view.get_balance(owner, token)
    if balance < amount:
        raise InsufficientBalance(
            f"{token}: {owner} holds {balance}, cannot transfer {amount}"
        )

    changes = []
    if amount > 0:
        allowances[owner][caller] = allowed - amount
        new_state = {**state, 'allowances': allowances}
        changes.append(UnitStateChange(
            unit=token, old_state=view.get_unit_state(token), new_state=new_state
        ))
    return build_transaction(
        view, _token_move(token, owner, to, amount, 'transfer_from'), changes,
        call_origin(view, caller, token, "TRANSFER_FROM"),
        wallets_to_create=missing_wallets(view, to),
    )


def compute_mint(
    view: LedgerView,
    token: str,
    caller: str,
    to: str,
    amount,
) -> PendingTransaction:
    """
    Create amount new tokens and credit them to to.

    Raises:
        MintingDisabled: If the token was created without mint rights
        Unauthorized: If caller is not the owner
        InvalidRecipient: If to is null or reserved
    """
    amount = to_amount(amount)
    state = view.get_unit_state(token)
    if not state['mintable']:
        raise MintingDisabled(f"{token} is not mintable")
    require_owner(view, token, caller)
    require_identity(to)

    changes = []
    if amount > 0:
        new_state = {**state, 'total_supply': state['total_supply'] + amount}
        changes.append(UnitStateChange(unit=token, old_state=state, new_state=new_state))
    return build_transaction(
        view, _token_move(token, SYSTEM_WALLET, to, amount, 'mint'), changes,
        call_origin(view, caller, token, "MINT"),
        wallets_to_create=missing_wallets(view, to),
    )


def compute_burn(
    view: LedgerView,
    token: str,
    caller: str,
    amount,
) -> PendingTransaction:
    """
    Destroy amount of the caller's own tokens.

    Raises:
        BurningDisabled: If the token was created without burn rights
        Unauthorized: If caller is not the owner
        InsufficientBalance: If caller holds less than amount
    """
    amount = to_amount(amount)
    state = view.get_unit_state(token)
    if not state['burnable']:
        raise BurningDisabled(f"{token} is not burnable")
    require_owner(view, token, caller)
    balance = view.get_balance(caller, token)
    if balance < amount:
        raise InsufficientBalance(
            f"{token}: {caller} holds {balance}, cannot burn {amount}"
        )

    changes = []
    if amount > 0:
        new_state = {**state, 'total_supply': state['total_supply'] - amount}
        changes.append(UnitStateChange(unit=token, old_state=state, new_state=new_state))
    return build_transaction(
        view, _token_move(token, caller, SYSTEM_WALLET, amount, 'burn'), changes,
        call_origin(view, caller, token, "BURN"),
    )


# ============================================================================
# READ OPERATIONS
# ============================================================================

def balance_of(view: LedgerView, token: str, who: str) -> Decimal:
    return view.get_balance(who, token)


def allowance(view: LedgerView, token: str, owner: str, spender: str) -> Decimal:
    state = view.get_unit_state(token)
    return state['allowances'].get(owner, {}).get(spender, Decimal("0"))


def total_supply(view: LedgerView, token: str) -> Decimal:
    return view.get_unit_state(token)['total_supply']


def circulating_supply(view: LedgerView, token: str) -> Decimal:
    """Sum of all non-system balances. Equals total_supply() when conservation holds."""
    positions = view.get_positions(token)
    return sum(
        (qty for wallet, qty in positions.items() if wallet != SYSTEM_WALLET),
        Decimal("0"),
    )


def get_token_info(view: LedgerView, token: str) -> Dict[str, Any]:
    """Metadata of a token: name, symbol, decimals, mintable, burnable, owner."""
    state = view.get_unit_state(token)
    return {
        'address': token,
        'name': state['name'],
        'symbol': state['symbol'],
        'decimals': state['decimals'],
        'mintable': state['mintable'],
        'burnable': state['burnable'],
        'owner': state['owner'],
        'total_supply': state['total_supply'],
    }


def is_mintable(view: LedgerView, token: str) -> bool:
    return view.get_unit_state(token)['mintable']


def is_burnable(view: LedgerView, token: str) -> bool:
    return view.get_unit_state(token)['burnable']
