"""
crowdsale.py - Token Sale with Soft Cap and Refunds

This module provides the crowdsale contract as a Unit plus pure operations:
1. create_crowdsale_unit() - Factory binding a sale to one token and one currency
2. get_sale_status() - Status derived from (now, deadline, total_raised, cancelled)
3. compute_purchase() / receive_payment() - Exchange currency for tokens
4. compute_claim_refund() - Return a contribution after a failed or cancelled sale
5. compute_withdraw_eth() / compute_withdraw_tokens() - Owner withdrawals
6. compute_change_rate() / compute_cancel() / compute_shorten_deadline() - Administration

Status is never stored. It is evaluated on every call:

    cancelled                     -> CANCELLED
    now <= deadline               -> ACTIVE
    total_raised >= eth_soft_cap  -> ENDED_SUCCESS
    otherwise                     -> ENDED_FAILED

The sale's address is also a wallet. It holds the unsold token inventory and
the currency escrowed from buyers. Every operation commits its state change
before any value moves, so a buyer re-entering from a receive hook already
sees its contribution zeroed.

Example:
    sale = create_crowdsale_unit(
        "0xsale", token="0xtoken", currency="ETH", decimals=18,
        eth_soft_cap=5, rate=500, duration_days=30, owner="alice",
        created_at=datetime(2025, 1, 1),
    )
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Dict, Any

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    UNIT_TYPE_CROWDSALE, SECONDS_PER_DAY,
    InsufficientBalance, InsufficientTokenInventory, NothingToRefund,
    CapNotReached, DeadlineCanOnlyShorten, SaleNotActive,
    build_transaction, call_origin, empty_pending_transaction,
    missing_wallets, require_identity, to_amount,
)
from ..access import require_owner
from . import token as token_ops


class SaleStatus(Enum):
    ACTIVE = "active"
    ENDED_SUCCESS = "ended_success"
    ENDED_FAILED = "ended_failed"
    CANCELLED = "cancelled"


REFUNDABLE = (SaleStatus.ENDED_FAILED, SaleStatus.CANCELLED)


def create_crowdsale_unit(
    address: str,
    token: str,
    currency: str,
    decimals: int,
    eth_soft_cap,
    rate,
    duration_days: int,
    owner: str,
    created_at: datetime,
) -> Unit:
    """
    Create a crowdsale unit.

    Args:
        address: Contract address, used as the unit symbol and inventory wallet
        token: Address of the token this sale sells (and nothing else)
        currency: Symbol of the native currency accepted as payment
        decimals: Token decimals (metadata)
        eth_soft_cap: Minimum currency raised for the sale to succeed
        rate: Tokens issued per unit of currency, positive
        duration_days: Sale length; deadline = created_at + duration_days days
        owner: Identity allowed to administer the sale
        created_at: Creation time (the block time at deployment)

    Raises:
        ValueError: If rate is zero, or an amount or duration is invalid
        InvalidRecipient: If owner is null or reserved
    """
    cap = to_amount(eth_soft_cap, "eth_soft_cap")
    rate = to_amount(rate, "rate")
    if rate == 0:
        raise ValueError("rate must be positive")
    if not isinstance(duration_days, int) or isinstance(duration_days, bool) or duration_days < 0:
        raise ValueError(f"duration_days must be a non-negative integer, got {duration_days!r}")
    if not token or not currency:
        raise ValueError("token and currency are required")
    require_identity(owner)

    deadline = created_at + timedelta(seconds=duration_days * SECONDS_PER_DAY)
    state = {
        'token': token,
        'currency': currency,
        'decimals': decimals,
        'eth_soft_cap': cap,
        'rate': rate,
        'created_at': created_at,
        'deadline': deadline,
        'total_raised': Decimal("0"),
        'contributions': {},
        'cancelled': False,
        'owner': owner,
        'tokens_sold': Decimal("0"),
        'total_refunded': Decimal("0"),
        'eth_withdrawn': Decimal("0"),
    }
    return Unit(
        symbol=address,
        name=f"Crowdsale of {token}",
        unit_type=UNIT_TYPE_CROWDSALE,
        _frozen_state=tuple(sorted(state.items())),
    )


def _status_of(state: Dict[str, Any], now: datetime) -> SaleStatus:
    if state['cancelled']:
        return SaleStatus.CANCELLED
    if now <= state['deadline']:
        return SaleStatus.ACTIVE
    if state['total_raised'] >= state['eth_soft_cap']:
        return SaleStatus.ENDED_SUCCESS
    return SaleStatus.ENDED_FAILED


def get_sale_status(view: LedgerView, sale: str) -> SaleStatus:
    """Current status of the sale at the view's block time."""
    return _status_of(view.get_unit_state(sale), view.current_time)


def _update(sale: str, state: Dict[str, Any], **fields) -> UnitStateChange:
    return UnitStateChange(unit=sale, old_state=state, new_state={**state, **fields})


# ============================================================================
# PURCHASE
# ============================================================================

def compute_purchase(
    view: LedgerView,
    sale: str,
    caller: str,
    value,
) -> PendingTransaction:
    """
    Buy floor(value * rate) tokens for value units of currency.

    Effects: contribution, total_raised and tokens_sold grow.
    Interactions, in order: currency caller -> sale, then tokens sale -> caller.
    A zero value buys nothing and changes nothing.

    Raises:
        ValueError: If value is negative or fractional
        SaleNotActive: If the sale has ended or was cancelled
        InvalidRecipient: If caller is null or reserved
        InsufficientTokenInventory: If the sale holds fewer tokens than owed
        InsufficientBalance: If caller holds less than value
    """
    value = to_amount(value, "value")
    state = view.get_unit_state(sale)
    status = _status_of(state, view.current_time)
    if status != SaleStatus.ACTIVE:
        raise SaleNotActive(f"{sale} is {status.value}, purchases are closed")
    require_identity(caller)
    if value == 0:
        return empty_pending_transaction(view)

    token = state['token']
    currency = state['currency']
    tokens_out = (value * state['rate']).to_integral_value(rounding=ROUND_FLOOR)
    inventory = token_ops.balance_of(view, token, sale)
    if tokens_out > inventory:
        raise InsufficientTokenInventory(
            f"{sale} holds {inventory} {token}, purchase needs {tokens_out}"
        )
    balance = view.get_balance(caller, currency)
    if balance < value:
        raise InsufficientBalance(
            f"{caller} holds {balance} {currency}, cannot pay {value}"
        )

    contributions = state['contributions']
    contributions[caller] = contributions.get(caller, Decimal("0")) + value
    change = UnitStateChange(
        unit=sale,
        old_state=view.get_unit_state(sale),
        new_state={
            **state,
            'contributions': contributions,
            'total_raised': state['total_raised'] + value,
            'tokens_sold': state['tokens_sold'] + tokens_out,
        },
    )

    moves = [Move(
        quantity=value,
        unit_symbol=currency,
        source=caller,
        dest=sale,
        contract_id=f'purchase_{sale}_payment',
    )]
    if tokens_out > 0:
        moves.append(Move(
            quantity=tokens_out,
            unit_symbol=token,
            source=sale,
            dest=caller,
            contract_id=f'purchase_{sale}_tokens',
        ))

    return build_transaction(
        view, moves, [change], call_origin(view, caller, sale, "PURCHASE")
    )


def receive_payment(
    view: LedgerView,
    sale: str,
    caller: str,
    amount,
) -> PendingTransaction:
    """
    Payment entry point: currency arriving at the sale without an
    instruction is a purchase with the attached value.

    Registered with ContractRuntime for the CROWDSALE unit type.
    """
    return compute_purchase(view, sale, caller, amount)


# ============================================================================
# REFUND
# ============================================================================

def compute_claim_refund(
    view: LedgerView,
    sale: str,
    caller: str,
) -> PendingTransaction:
    """
    Return caller's whole contribution after a failed or cancelled sale.

    The contribution is zeroed in the same transaction, before the currency
    moves back, so a second claim (nested or later) finds nothing to refund.
    Tokens bought stay with the buyer.

    Raises:
        NothingToRefund: If the sale is active or succeeded, or caller has
            no outstanding contribution
        InsufficientBalance: If the owner already withdrew the escrow
    """
    state = view.get_unit_state(sale)
    status = _status_of(state, view.current_time)
    if status not in REFUNDABLE:
        raise NothingToRefund(f"{sale} is {status.value}, refunds are not open")

    contribution = state['contributions'].get(caller, Decimal("0"))
    if contribution <= 0:
        raise NothingToRefund(f"{caller} has no contribution to {sale}")

    currency = state['currency']
    held = view.get_balance(sale, currency)
    if held < contribution:
        raise InsufficientBalance(
            f"{sale} holds {held} {currency}, refund of {contribution} owed to {caller}"
        )

    contributions = state['contributions']
    contributions[caller] = Decimal("0")
    change = UnitStateChange(
        unit=sale,
        old_state=view.get_unit_state(sale),
        new_state={
            **state,
            'contributions': contributions,
            'total_refunded': state['total_refunded'] + contribution,
        },
    )
    moves = [Move(
        quantity=contribution,
        unit_symbol=currency,
        source=sale,
        dest=caller,
        contract_id=f'refund_{sale}',
    )]
    return build_transaction(
        view, moves, [change], call_origin(view, caller, sale, "REFUND")
    )


# ============================================================================
# OWNER OPERATIONS
# ============================================================================

def compute_withdraw_eth(
    view: LedgerView,
    sale: str,
    caller: str,
) -> PendingTransaction:
    """
    Send all currency held by the sale to the owner.

    Allowed as soon as the soft cap is met, even before the deadline, unless
    the sale was cancelled. Returns an empty transaction when nothing is held.

    Raises:
        Unauthorized: If caller is not the owner
        CapNotReached: If the cap is unmet or the sale was cancelled
    """
    require_owner(view, sale, caller)
    state = view.get_unit_state(sale)
    if state['cancelled']:
        raise CapNotReached(f"{sale} was cancelled, escrow is reserved for refunds")
    if state['total_raised'] < state['eth_soft_cap']:
        raise CapNotReached(
            f"{sale} raised {state['total_raised']} of {state['eth_soft_cap']}"
        )

    currency = state['currency']
    held = view.get_balance(sale, currency)
    if held == 0:
        return empty_pending_transaction(view)

    owner = state['owner']
    change = _update(sale, state, eth_withdrawn=state['eth_withdrawn'] + held)
    moves = [Move(
        quantity=held,
        unit_symbol=currency,
        source=sale,
        dest=owner,
        contract_id=f'withdraw_eth_{sale}',
    )]
    return build_transaction(
        view, moves, [change], call_origin(view, caller, sale, "WITHDRAW_ETH")
    )


def compute_withdraw_tokens(
    view: LedgerView,
    sale: str,
    caller: str,
    to: str,
    amount,
) -> PendingTransaction:
    """
    Move amount tokens out of the sale's inventory, in any state.

    Reclaiming mid-sale is intentional and shrinks what buyers can purchase.

    Raises:
        Unauthorized: If caller is not the owner
        InvalidRecipient: If to is null or reserved
        InsufficientBalance: If the sale holds fewer than amount tokens
    """
    require_owner(view, sale, caller)
    amount = to_amount(amount)
    require_identity(to)
    token = view.get_unit_state(sale)['token']
    held = token_ops.balance_of(view, token, sale)
    if held < amount:
        raise InsufficientBalance(f"{sale} holds {held} {token}, cannot withdraw {amount}")

    moves = []
    if amount > 0 and to != sale:
        moves.append(Move(
            quantity=amount,
            unit_symbol=token,
            source=sale,
            dest=to,
            contract_id=f'withdraw_tokens_{sale}',
        ))
    return build_transaction(
        view, moves, [], call_origin(view, caller, sale, "WITHDRAW_TOKENS"),
        wallets_to_create=missing_wallets(view, to),
    )


def compute_change_rate(
    view: LedgerView,
    sale: str,
    caller: str,
    new_rate,
) -> PendingTransaction:
    """
    Set the rate for future purchases. No bounds beyond non-negative.

    Raises:
        Unauthorized: If caller is not the owner
        ValueError: If new_rate is negative or fractional
    """
    require_owner(view, sale, caller)
    new_rate = to_amount(new_rate, "rate")
    state = view.get_unit_state(sale)
    return build_transaction(
        view, [], [_update(sale, state, rate=new_rate)],
        call_origin(view, caller, sale, "CHANGE_RATE"),
    )


def compute_cancel(view: LedgerView, sale: str, caller: str) -> PendingTransaction:
    """
    Cancel an active sale. Irreversible; opens refunds for every contributor.

    Once the owner has collected currency the escrow no longer covers every
    contribution, so such a sale can no longer be cancelled.

    Raises:
        Unauthorized: If caller is not the owner
        SaleNotActive: If the sale already ended, was cancelled or has paid
            out currency to the owner
    """
    require_owner(view, sale, caller)
    state = view.get_unit_state(sale)
    status = _status_of(state, view.current_time)
    if status != SaleStatus.ACTIVE:
        raise SaleNotActive(f"{sale} is {status.value}, cannot cancel")
    if state['eth_withdrawn'] > 0:
        raise SaleNotActive(
            f"{sale} already paid {state['eth_withdrawn']} to the owner, cannot cancel"
        )
    return build_transaction(
        view, [], [_update(sale, state, cancelled=True)],
        call_origin(view, caller, sale, "CANCEL"),
    )


def compute_shorten_deadline(
    view: LedgerView,
    sale: str,
    caller: str,
    new_deadline: datetime,
) -> PendingTransaction:
    """
    Raises:
        Unauthorized: If caller is not the owner
        ValueError: If new_deadline is not a datetime
        DeadlineCanOnlyShorten: If new_deadline is not strictly earlier
    """
    require_owner(view, sale, caller)
    if not isinstance(new_deadline, datetime):
        raise ValueError(f"new_deadline must be a datetime, got {new_deadline!r}")
    state = view.get_unit_state(sale)
    if new_deadline >= state['deadline']:
        raise DeadlineCanOnlyShorten(
            f"{sale}: {new_deadline} is not earlier than {state['deadline']}"
        )
    return build_transaction(
        view, [], [_update(sale, state, deadline=new_deadline)],
        call_origin(view, caller, sale, "SHORTEN_DEADLINE"),
    )


# ============================================================================
# READ OPERATIONS
# ============================================================================

def ico_has_ended(view: LedgerView, sale: str) -> bool:
    """True once the deadline has passed or the sale was cancelled."""
    return get_sale_status(view, sale) != SaleStatus.ACTIVE


def ico_cancelled(view: LedgerView, sale: str) -> bool:
    return view.get_unit_state(sale)['cancelled']


def get_total_tokens_sold(view: LedgerView, sale: str) -> Decimal:
    return view.get_unit_state(sale)['tokens_sold']


def get_rate(view: LedgerView, sale: str) -> Decimal:
    return view.get_unit_state(sale)['rate']


def get_eth_soft_cap(view: LedgerView, sale: str) -> Decimal:
    return view.get_unit_state(sale)['eth_soft_cap']


def get_deadline(view: LedgerView, sale: str) -> datetime:
    return view.get_unit_state(sale)['deadline']


def get_total_raised(view: LedgerView, sale: str) -> Decimal:
    return view.get_unit_state(sale)['total_raised']


def get_contribution(view: LedgerView, sale: str, who: str) -> Decimal:
    return view.get_unit_state(sale)['contributions'].get(who, Decimal("0"))


def get_token_address(view: LedgerView, sale: str) -> str:
    return view.get_unit_state(sale)['token']


def held_currency(view: LedgerView, sale: str) -> Decimal:
    """Currency currently escrowed by the sale."""
    return view.get_balance(sale, view.get_unit_state(sale)['currency'])


def sale_summary(view: LedgerView, sale: str) -> Dict[str, Any]:
    """Snapshot of a sale's accounting, for audits and reporting."""
    state = view.get_unit_state(sale)
    return {
        'status': _status_of(state, view.current_time),
        'total_raised': state['total_raised'],
        'total_refunded': state['total_refunded'],
        'eth_withdrawn': state['eth_withdrawn'],
        'tokens_sold': state['tokens_sold'],
        'held_currency': view.get_balance(sale, state['currency']),
        'token_inventory': token_ops.balance_of(view, state['token'], sale),
        'outstanding_contributions': sum(state['contributions'].values(), Decimal("0")),
    }
