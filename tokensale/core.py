"""
Shared vocabulary of the token sale system.

Contracts describe what they want as a PendingTransaction of Moves and
UnitStateChanges, built against a LedgerView; Ledger.execute turns it into
a Transaction. Every deployed contract and the native currency is a Unit.

Also here: the ContractError conditions contracts raise, identity and
amount checks, and intent-id hashing. Nothing in this module mutates a
ledger.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, runtime_checkable,
)


# ============================================================================
# AMOUNTS
# ============================================================================
#
# Amounts are whole base units (10M tokens at 18 decimals is 10**25) held
# as Decimal. 50 digits covers any supply this package deals with.
#
_AMOUNT_CONTEXT = getcontext()
_AMOUNT_CONTEXT.prec = 50
_AMOUNT_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Issuance source and burn sink. Exempt from balance limits.
SYSTEM_WALLET = "system"

# The null identity. Never a valid recipient.
ZERO_ADDRESS = "0x" + "0" * 40

UNIT_TYPE_NATIVE = "NATIVE"
UNIT_TYPE_TOKEN = "TOKEN"
UNIT_TYPE_CROWDSALE = "CROWDSALE"
UNIT_TYPE_DISBURSEMENT = "DISBURSEMENT"

DEFAULT_NATIVE_SYMBOL = "ETH"

SECONDS_PER_DAY = 86400

# Contracts never produce fractions; anything that slips in is truncated.
DECIMAL_ROUNDING = {
    UNIT_TYPE_NATIVE: ROUND_DOWN,
    UNIT_TYPE_TOKEN: ROUND_DOWN,
}

# wallet -> amount, for one unit
Positions = Dict[str, Decimal]

# unit -> amount, for one wallet
BalanceMap = Dict[str, Decimal]

# Contract storage: owner, caps, allowances, contributions...
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    What a contract function may look at while building a transaction.

    Contract code reads balances, storage, the block clock and caller nonces
    through this interface and answers with a PendingTransaction. Ledger
    satisfies it directly; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Block time used for deadlines and transaction timestamps."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Holdings of unit_symbol at wallet_id; zero when nothing was ever held."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Non-zero holders of unit_symbol."""
        ...

    def list_wallets(self) -> Set[str]:
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        ...

    def get_nonce(self, wallet_id: str) -> int:
        """How many sequenced transactions wallet_id has had applied."""
        ...


# A receive hook runs when a move credits the wallet it is registered for.
# It gets the live ledger and may call back into any contract.
ReceiveHook = Callable[[Any, 'Move'], None]


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    What Ledger.execute did with a pending transaction.

    ALREADY_APPLIED means the intent_id was seen before and nothing happened.
    REJECTED covers balance limits, transfer rules, outdated storage
    snapshots, outdated caller nonces and timestamps ahead of the clock;
    Ledger.last_rejection says which.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Kind of caller behind a transaction."""
    USER_ACTION = "user_action"           # account or contract calling a contract
    CONTRACT = "contract"                 # unsequenced contract bookkeeping
    DEPLOYMENT = "deployment"             # factory create
    SYSTEM = "system"                     # genesis funding and initial supply


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    pass


class TransferRuleViolation(LedgerError):
    """A unit's transfer rule refused a move."""
    pass


class UnitNotRegistered(LedgerError):
    """No currency or contract is registered under that symbol."""
    pass


class WalletNotRegistered(LedgerError):
    pass


class TransactionRejected(LedgerError):
    """Raised by the runtime when the ledger rejects a submitted transaction."""
    pass


class ContractError(LedgerError):
    """A named condition that aborts a contract operation."""
    pass


class InsufficientBalance(ContractError):
    """The debited identity holds less than the requested amount."""
    pass


class InsufficientAllowance(ContractError):
    """The spender's allowance is smaller than the requested amount."""
    pass


class InsufficientTokenInventory(ContractError):
    """The sale does not hold enough unsold tokens for a purchase."""
    pass


class Unauthorized(ContractError):
    """The caller is not the owner of the contract."""
    pass


class MintingDisabled(ContractError):
    pass


class BurningDisabled(ContractError):
    pass


class NothingToRefund(ContractError):
    """No outstanding contribution, or the sale is not refundable."""
    pass


class CapNotReached(ContractError):
    """Currency withdrawal attempted before the soft cap was met."""
    pass


class DeadlineCanOnlyShorten(ContractError):
    pass


class InvalidRecipient(ContractError):
    """Null, empty or reserved identity used as a recipient."""
    pass


class SaleNotActive(ContractError):
    """The sale has ended or was cancelled."""
    pass


class BatchTooLarge(ContractError):
    pass


class PaymentNotAccepted(ContractError):
    """Currency sent to a contract that has no payment entry point."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def is_valid_identity(identity: Optional[str]) -> bool:
    """True if identity can hold or receive value."""
    if not isinstance(identity, str) or not identity.strip():
        return False
    return identity not in (ZERO_ADDRESS, SYSTEM_WALLET)


def require_identity(identity: Optional[str]) -> str:
    """Return identity unchanged, or raise InvalidRecipient."""
    if not is_valid_identity(identity):
        raise InvalidRecipient(f"invalid identity: {identity!r}")
    return identity


def to_amount(value: Any, name: str = "amount") -> Decimal:
    """
    Coerce value to a non-negative integral Decimal in base units.

    Raises:
        ValueError: If value is negative, fractional, non-finite or not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if isinstance(value, float):
        raise ValueError(f"{name} must be an integer or Decimal, got float {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(value)
        except Exception as exc:
            raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if not value.is_finite():
        raise ValueError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if value != value.to_integral_value():
        raise ValueError(f"{name} must be a whole number of base units, got {value}")
    return value.quantize(Decimal(1))


def missing_wallets(view: LedgerView, *wallet_ids: str) -> Tuple[str, ...]:
    """Wallets among wallet_ids the ledger has not seen yet, in first-seen order."""
    known = view.list_wallets()
    missing: List[str] = []
    for wallet_id in wallet_ids:
        if wallet_id not in known and wallet_id not in missing:
            missing.append(wallet_id)
    return tuple(missing)


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Who made the call, to which contract, and as which of their calls.

    source_id is the caller identity. unit_symbol is the called contract's
    address and event_type the operation ("TRANSFER", "PURCHASE", ...).
    nonce is the caller's nonce when the transaction was built, or None for
    work that is not sequenced per caller.
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None
    nonce: Optional[int] = None

    def __repr__(self) -> str:
        text = f"{self.origin_type.value}:{self.source_id}"
        if self.event_type:
            text += f" {self.event_type}"
        if self.unit_symbol:
            text += f"@{self.unit_symbol}"
        if self.nonce is not None:
            text += f"#{self.nonce}"
        return f"Origin({text})"


def call_origin(view: LedgerView, caller: str, address: str, event_type: str) -> TransactionOrigin:
    """Origin for a caller-initiated call, sequenced by the caller's nonce."""
    return TransactionOrigin(
        origin_type=OriginType.USER_ACTION,
        source_id=caller,
        unit_symbol=address,
        event_type=event_type,
        nonce=view.get_nonce(caller),
    )


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Whole-storage replacement for one contract.

    old_state is what the contract function read; the ledger rejects the
    transaction if storage no longer matches it. None skips that check.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Storage keys whose value differs, as key -> (before, after)."""
        before = self.old_state if isinstance(self.old_state, dict) else {}
        after = self.new_state if isinstance(self.new_state, dict) else {}
        return {
            key: (before.get(key), after.get(key))
            for key in before.keys() | after.keys()
            if before.get(key) != after.get(key)
        }


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    One debit/credit pair: quantity of unit_symbol leaves source and
    arrives at dest.

    For token and contract units the symbol is the contract address. Moves
    out of SYSTEM_WALLET issue value; moves into it burn value. contract_id
    tags the operation that produced the move (e.g. "purchase_0x..._tokens").
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        for label in ('source', 'dest', 'unit_symbol', 'contract_id'):
            text = getattr(self, label)
            if not isinstance(text, str) or not text.strip():
                raise ValueError(f"Move {label} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(
                f"Move quantity must be Decimal, got {type(self.quantity).__name__}"
            )
        if not self.quantity.is_finite() or self.quantity <= 0:
            raise ValueError(f"Move quantity must be finite and positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError(f"Move source and dest must be different, got {self.source} twice")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """Plain notation without trailing zeros: 100.00 and 1E+2 both give "100"."""
    if not d:
        return "0"
    return format(d.normalize(), 'f')


def _canonicalize(value: Any) -> str:
    """
    Stable text form of contract storage, used for hashing.

    Dict keys are sorted and Decimals normalized. A type tag keeps "1", 1
    and Decimal(1) apart.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, Decimal):
        return "D:" + _normalize_decimal(value)
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return "S:" + value
    if isinstance(value, datetime):
        return "T:" + value.isoformat()
    if isinstance(value, dict):
        pairs = sorted(value.items(), key=lambda pair: str(pair[0]))
        return "{" + ",".join(_canonicalize(k) + ":" + _canonicalize(v) for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(map(_canonicalize, value)) + "]"
    if isinstance(value, (set, frozenset)):
        return "<" + ",".join(sorted(map(_canonicalize, value))) + ">"
    return "R:" + repr(value)


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    First 16 hex digits of a sha256 over what a transaction would do.

    The caller nonce is part of the origin, so making the same call twice
    yields two intents while resubmitting one built transaction yields one.
    Moves keep their order, which is the order interactions happen in;
    deployments and storage updates are sorted by symbol.
    """
    nonce = "" if origin.nonce is None else str(origin.nonce)
    parts = [
        f"call {origin.origin_type.value} {origin.source_id} "
        f"{origin.unit_symbol or ''} {origin.event_type or ''} {nonce}"
    ]
    parts += [
        f"deploy {unit.symbol} {unit.unit_type}"
        for unit in sorted(units_to_create, key=lambda u: u.symbol)
    ]
    parts += [
        f"move {_normalize_decimal(m.quantity)} {m.unit_symbol} {m.source} {m.dest} {m.contract_id}"
        for m in moves
    ]
    parts += [
        f"store {sc.unit} {_canonicalize(sc.old_state)} {_canonicalize(sc.new_state)}"
        for sc in sorted(state_changes, key=lambda s: s.unit)
    ]
    digest = hashlib.sha256("\n".join(parts).encode())
    return digest.hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    What a contract call wants to happen - represents INTENT.

    state_changes are committed first, then moves are applied in order.
    Contracts and wallets listed in units_to_create and wallets_to_create
    are registered before either. intent_id is derived from the content
    unless given.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    wallets_to_create: Tuple[str, ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has nothing to apply."""
        return (not self.moves and not self.state_changes
                and not self.units_to_create and not self.wallets_to_create)

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
    wallets_to_create: Optional[Tuple[str, ...]] = None,
) -> PendingTransaction:
    """
    Stamp moves and storage updates with the block time and an origin.

    Storage snapshots are deep-copied so the caller can keep mutating its
    dicts. Every compute_* function ends here.

    Example:
        def compute_cancel(view, sale, caller):
            old_state = view.get_unit_state(sale)
            new_state = {**old_state, "cancelled": True}
            changes = [UnitStateChange(unit=sale, old_state=old_state, new_state=new_state)]
            return build_transaction(view, [], changes, call_origin(view, caller, sale, "CANCEL"))
    """
    snapshots = tuple(
        UnitStateChange(sc.unit, copy.deepcopy(sc.old_state), copy.deepcopy(sc.new_state))
        for sc in state_changes or ()
    )
    return PendingTransaction(
        moves=tuple(moves),
        state_changes=snapshots,
        origin=origin or TransactionOrigin(OriginType.CONTRACT, "contract"),
        timestamp=view.current_time,
        units_to_create=tuple(units_to_create or ()),
        wallets_to_create=tuple(wallets_to_create or ()),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction, for operations with nothing to do."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


_BOX_WIDTH = 100


def _boxed(sections: List[List[str]]) -> str:
    """Draw sections of text lines inside one box, separated by rules."""
    rule = "─" * _BOX_WIDTH

    def row(text: str) -> str:
        if len(text) > _BOX_WIDTH:
            text = text[:_BOX_WIDTH - 3] + "..."
        return f"│{text.ljust(_BOX_WIDTH)}│"

    out = ["", f"┌{rule}┐"]
    for n, section in enumerate(sections):
        if n:
            out.append(f"├{rule}┤")
        out.extend(row(text) for text in section)
    out.append(f"└{rule}┘")
    return "\n".join(out)


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Everything from the PendingTransaction is carried over, plus where and
    when it ran: exec_id ("{ledger}:{sequence}:{block seconds}"),
    ledger_name, execution_time and sequence_number.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    wallets_to_create: Tuple[str, ...] = ()

    def __post_init__(self):
        if (not self.moves and not self.state_changes
                and not self.units_to_create and not self.wallets_to_create):
            raise ValueError("Transaction must change something")

    def __repr__(self) -> str:
        origin = self.origin
        call = origin.event_type or origin.origin_type.value
        if origin.unit_symbol:
            call = f"{call} on {origin.unit_symbol}"
        header = [
            f" Transaction {self.exec_id}",
            f"   call     : {call}",
            f"   caller   : {origin.source_id}"
            + ("" if origin.nonce is None else f" (nonce {origin.nonce})"),
            f"   intent   : {self.intent_id}",
            f"   built at : {self.timestamp}",
        ]
        sections = [header]

        created = [f"   + contract {u.symbol} [{u.unit_type}] {u.name}" for u in self.units_to_create]
        created += [f"   + wallet   {w}" for w in self.wallets_to_create]
        if created:
            sections.append(created)

        if self.state_changes:
            storage = [" Storage:"]
            for sc in self.state_changes:
                for key, (before, after) in sorted(sc.changed_fields().items()):
                    storage.append(f"   {sc.unit}.{key}: {before!r} → {after!r}")
            sections.append(storage)

        transfers = [f" Transfers ({len(self.moves)}):"]
        transfers += [
            f"   {m.source} → {m.dest}: {m.quantity} {m.unit_symbol}" for m in self.moves
        ]
        sections.append(transfers)
        return _boxed(sections)


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a mutable state dict to a frozen, key-sorted tuple of pairs."""
    if not state:
        return ()
    return tuple(sorted(copy.deepcopy(state).items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return copy.deepcopy(dict(frozen_state))


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit in the ledger: the native currency or a contract.

    A contract's unit symbol is its address; its storage lives in the
    frozen state and its holdings in the wallet of the same name.

    Attributes:
        symbol: Address or currency code.
        name: Human-readable name.
        unit_type: NATIVE, TOKEN, CROWDSALE or DISBURSEMENT.
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """A fresh mutable copy of the unit's state."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision using quantize.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(quantizer, rounding=rounding_mode)


# ============================================================================
# TRANSFER RULES
# ============================================================================

def null_recipient_rule(view: LedgerView, move: Move) -> None:
    """
    Reject any move that credits the null address.

    Raises:
        TransferRuleViolation: If move.dest is ZERO_ADDRESS.
    """
    if move.dest == ZERO_ADDRESS:
        raise TransferRuleViolation(
            f"{move.unit_symbol}: cannot credit the null address"
        )


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def native_currency(symbol: str = DEFAULT_NATIVE_SYMBOL, name: str = "Ether") -> Unit:
    """
    Create the native payment currency unit.

    Amounts are whole base units (wei-like), balances can never go negative
    and new currency only enters through issuance from SYSTEM_WALLET.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_NATIVE,
        decimal_places=0,
        min_balance=Decimal("0"),
        transfer_rule=null_recipient_rule,
    )
