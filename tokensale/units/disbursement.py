"""
disbursement.py - Batch Token Airdrops

A disbursement contract holds tokens in its own wallet and lets its owner
send them to many recipients at once. Each batch is one transaction: either
every recipient is paid or nobody is.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Sequence

from ..core import (
    LedgerView, Move, PendingTransaction, Unit,
    UNIT_TYPE_DISBURSEMENT,
    InsufficientBalance, BatchTooLarge,
    build_transaction, call_origin, missing_wallets, require_identity, to_amount,
)
from ..access import require_owner
from . import token as token_ops


# Upper bound on recipients per airdrop call.
MAX_BATCH_SIZE = 200


def create_disbursement_unit(address: str, token: str, owner: str) -> Unit:
    """
    Create a disbursement contract bound to one token.

    Raises:
        ValueError: If token is empty
        InvalidRecipient: If owner is null or reserved
    """
    if not token or not token.strip():
        raise ValueError("token cannot be empty")
    require_identity(owner)
    return Unit(
        symbol=address,
        name=f"Airdrop of {token}",
        unit_type=UNIT_TYPE_DISBURSEMENT,
        _frozen_state=(('owner', owner), ('token', token)),
    )


def _airdrop(
    view: LedgerView,
    drop: str,
    caller: str,
    payouts: List[tuple],
    event_type: str,
) -> PendingTransaction:
    require_owner(view, drop, caller)
    if len(payouts) > MAX_BATCH_SIZE:
        raise BatchTooLarge(f"{len(payouts)} recipients, at most {MAX_BATCH_SIZE} per batch")

    token = view.get_unit_state(drop)['token']
    total = Decimal("0")
    moves = []
    for i, (recipient, amount) in enumerate(payouts):
        require_identity(recipient)
        total += amount
        if amount > 0 and recipient != drop:
            moves.append(Move(
                quantity=amount,
                unit_symbol=token,
                source=drop,
                dest=recipient,
                contract_id=f'airdrop_{drop}_{i}',
            ))

    held = token_ops.balance_of(view, token, drop)
    if held < total:
        raise InsufficientBalance(f"{drop} holds {held} {token}, batch needs {total}")

    return build_transaction(
        view, moves, [], call_origin(view, caller, drop, event_type),
        wallets_to_create=missing_wallets(view, *(r for r, _ in payouts)),
    )


def compute_single_value_airdrop(
    view: LedgerView,
    drop: str,
    caller: str,
    recipients: Sequence[str],
    amount,
) -> PendingTransaction:
    """
    Send the same amount of tokens to every recipient.

    Raises:
        Unauthorized: If caller is not the owner
        BatchTooLarge: If there are more than MAX_BATCH_SIZE recipients
        InvalidRecipient: If any recipient is null or reserved
        InsufficientBalance: If the contract holds less than the batch total
    """
    amount = to_amount(amount)
    return _airdrop(
        view, drop, caller, [(r, amount) for r in recipients], "SINGLE_VALUE_AIRDROP"
    )


def compute_multi_value_airdrop(
    view: LedgerView,
    drop: str,
    caller: str,
    recipients: Sequence[str],
    amounts: Sequence,
) -> PendingTransaction:
    """
    Send amounts[i] tokens to recipients[i].

    Raises:
        ValueError: If recipients and amounts differ in length
        Unauthorized: If caller is not the owner
        BatchTooLarge: If there are more than MAX_BATCH_SIZE recipients
        InvalidRecipient: If any recipient is null or reserved
        InsufficientBalance: If the contract holds less than the batch total
    """
    if len(recipients) != len(amounts):
        raise ValueError(
            f"{len(recipients)} recipients but {len(amounts)} amounts"
        )
    payouts = [(r, to_amount(a)) for r, a in zip(recipients, amounts)]
    return _airdrop(view, drop, caller, payouts, "MULTI_VALUE_AIRDROP")


def compute_withdraw_tokens(
    view: LedgerView,
    drop: str,
    caller: str,
    to: str,
    amount,
) -> PendingTransaction:
    """
    Move undistributed tokens out of the contract.

    Raises:
        Unauthorized: If caller is not the owner
        InvalidRecipient: If to is null or reserved
        InsufficientBalance: If the contract holds fewer than amount tokens
    """
    amount = to_amount(amount)
    return _airdrop(view, drop, caller, [(to, amount)], "WITHDRAW_TOKENS")
