"""
access.py - Ownership of contract units

Every contract unit keeps its owner in its own state under the 'owner' key.
Contracts call require_owner() before privileged operations instead of
inheriting an ownership base class.
"""

from __future__ import annotations

from .core import (
    LedgerView, PendingTransaction, UnitStateChange,
    Unauthorized,
    build_transaction, call_origin, require_identity,
)


def get_owner(view: LedgerView, address: str) -> str:
    """Return the current owner of the contract at address."""
    return view.get_unit_state(address)['owner']


def is_owner(view: LedgerView, address: str, caller: str) -> bool:
    return get_owner(view, address) == caller


def require_owner(view: LedgerView, address: str, caller: str) -> None:
    """
    Raises:
        Unauthorized: If caller does not own the contract at address
    """
    if not is_owner(view, address, caller):
        raise Unauthorized(f"{caller} is not the owner of {address}")


def compute_set_owner(
    view: LedgerView,
    address: str,
    caller: str,
    new_owner: str,
) -> PendingTransaction:
    """
    Hand ownership of a contract to new_owner.

    Args:
        view: Read-only ledger access
        address: Contract address
        caller: Must be the current owner
        new_owner: Identity that receives ownership

    Returns:
        PendingTransaction updating the contract's owner

    Raises:
        Unauthorized: If caller is not the owner
        InvalidRecipient: If new_owner is null or reserved
    """
    require_owner(view, address, caller)
    require_identity(new_owner)

    state = view.get_unit_state(address)
    new_state = {**state, 'owner': new_owner}
    changes = [UnitStateChange(unit=address, old_state=state, new_state=new_state)]
    return build_transaction(
        view, [], changes, call_origin(view, caller, address, "SET_OWNER")
    )
