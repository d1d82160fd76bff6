"""
ledger.py - Stateful Execution Environment

Ledger is the replicated state every contract runs against: balances per
(wallet, unit), the storage of each deployed contract, the block clock,
caller nonces and the receive hooks of participating wallets. Contract
functions only read it; Ledger.execute is the single place state changes.

Execution follows checks-effects-interactions. A pending transaction is
validated as a whole, its storage updates and the caller's nonce are
committed, and only then are its moves applied one by one, each credit
followed by the recipient's hook. Hooks may call back into contracts; if
anything raises, the ledger is restored to where it was before the outer
call and the error propagates.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any
from decimal import Decimal

from .core import (
    SYSTEM_WALLET,
    Unit, PendingTransaction, Transaction, ExecuteResult,
    Positions, UnitState, BalanceMap, ReceiveHook,
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    _freeze_state,
)


class Ledger:
    """
    Balances, contract storage and block clock, with an append-only log.

    A Ledger is also a LedgerView, so it is handed straight to compute_*
    functions. Calls are serialized; there is no locking.

    Example:
        ledger = Ledger("chain", datetime(2025, 1, 1))
        ledger.register_unit(native_currency())
        ledger.register_wallet("alice")
        ledger.register_wallet("0xtoken")
        ledger.register_unit(create_token_unit("0xtoken", 1000, 18, "T", "T", False, False, "alice"))
        ledger.execute(compute_issuance(ledger, "0xtoken"))
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Args:
            name: Used in exec ids
            initial_time: Block time at genesis (default: 1970-01-01)
            verbose: Print each applied, replayed, rejected or rolled back transaction
            test_mode: Permit set_balance()
        """
        self.name = name
        self.verbose = verbose
        self._test_mode = test_mode
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)

        # SYSTEM_WALLET exists from genesis; it issues and absorbs supply
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.balances: Dict[str, Dict[str, Decimal]] = {
            SYSTEM_WALLET: defaultdict(lambda: Decimal("0")),
        }
        # unit -> {holder -> non-zero balance}
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)
        self.units: Dict[str, Unit] = {}
        self.receive_hooks: Dict[str, ReceiveHook] = {}

        self.nonces: Dict[str, int] = {}
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._next_sequence: int = 0
        self.last_rejection: Optional[str] = None

    # ========================================================================
    # READS (LedgerView)
    # ========================================================================

    def _unit(self, symbol: str) -> Unit:
        try:
            return self.units[symbol]
        except KeyError:
            raise UnitNotRegistered(f"Unit {symbol} not registered") from None

    def _require_wallet(self, wallet_id: str) -> None:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Zero for wallets that never held unit_symbol, registered or not."""
        self._unit(unit_symbol)
        return self.balances.get(wallet_id, {}).get(unit_symbol, Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """A private copy of the contract's storage."""
        return self._unit(unit_symbol).state

    def get_positions(self, unit_symbol: str) -> Positions:
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        return set(self.registered_wallets)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def get_unit(self, symbol: str) -> Unit:
        return self._unit(symbol)

    def get_nonce(self, wallet_id: str) -> int:
        return self.nonces.get(wallet_id, 0)

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Every unit wallet_id has touched, zero balances included."""
        self._require_wallet(wallet_id)
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Net of every balance of unit_symbol, SYSTEM_WALLET's included.

        Issuance debits SYSTEM_WALLET by what it credits elsewhere, so this
        is zero whenever the unit is conserved.
        """
        self._unit(unit_symbol)
        total = Decimal("0")
        for wallet in sorted(self.registered_wallets):
            total += self.balances[wallet].get(unit_symbol, Decimal("0"))
        return total

    def verify_double_entry(
        self,
        expected_supplies: Dict[str, Decimal] = None,
    ) -> Dict[str, Any]:
        """
        Check that every unit nets to zero and, optionally, that the amount
        outstanding (what SYSTEM_WALLET has issued minus what it took back)
        equals expected_supplies[unit].

        Returns {'valid': bool, 'supplies': {unit: outstanding},
        'discrepancies': [{'unit', 'expected', 'actual', 'difference', ...}]}.
        """
        expected_supplies = expected_supplies or {}
        supplies: Dict[str, Decimal] = {}
        discrepancies: List[Dict[str, Any]] = []

        def report(unit_symbol, expected, actual, **extra):
            discrepancies.append({
                'unit': unit_symbol,
                'expected': expected,
                'actual': actual,
                'difference': actual - expected,
                **extra,
            })

        for unit_symbol in self.units:
            outstanding = -self.balances[SYSTEM_WALLET].get(unit_symbol, Decimal("0"))
            supplies[unit_symbol] = outstanding
            net = self.total_supply(unit_symbol)
            if net != 0:
                report(unit_symbol, Decimal("0"), net)
            if unit_symbol in expected_supplies and outstanding != expected_supplies[unit_symbol]:
                report(unit_symbol, expected_supplies[unit_symbol], outstanding)

        for unit_symbol, expected in expected_supplies.items():
            if unit_symbol not in self.units:
                report(unit_symbol, expected, Decimal("0"), error='unit not registered')

        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """True for SYSTEM_WALLET and every wallet opened since."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # BLOCK CLOCK
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """Move the block clock to new_time. Staying put is allowed, going back is not."""
        if new_time < self._current_time:
            raise ValueError(
                f"block time cannot go backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # ACCOUNTS AND CONTRACTS
    # ========================================================================

    def register_wallet(self, wallet_id: str, on_receive: Optional[ReceiveHook] = None) -> str:
        """
        Open an account or contract wallet. on_receive, if given, is called
        as on_receive(ledger, move) after every credit to it.

        Raises:
            ValueError: If wallet_id is taken
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        if on_receive is not None:
            self.receive_hooks[wallet_id] = on_receive
        return wallet_id

    def set_receive_hook(self, wallet_id: str, hook: Optional[ReceiveHook]) -> None:
        """Install the receive hook of a wallet; None removes it."""
        self._require_wallet(wallet_id)
        if hook is None:
            self.receive_hooks.pop(wallet_id, None)
        else:
            self.receive_hooks[wallet_id] = hook

    def register_unit(self, unit: Unit) -> None:
        """Add the native currency or a deployed contract. Symbols are unique."""
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"Deployed {unit.unit_type.lower()} {unit.symbol} ({unit.name})")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance without a counter-entry. Test fixtures only: the
        ledger will no longer net to zero for unit_symbol.
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() requires Ledger(test_mode=True); "
                "fund wallets with ContractRuntime.fund() or an issuance transaction"
            )
        self._require_wallet(wallet_id)
        self._unit(unit_symbol)
        self._write_balance(wallet_id, unit_symbol, Decimal(str(quantity)))

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """exec:{ledger}:{sequence, 12 digits}:{block time in epoch seconds}"""
        seconds = int((self._current_time - datetime(1970, 1, 1)).total_seconds())
        return f"exec:{self.name}:{sequence:012d}:{seconds}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a pending transaction completely or not at all.

        New wallets and contracts are registered, then everything is
        validated. On success the storage updates land and the caller's
        nonce advances before any value moves; moves then run in order with
        the recipient's hook after each credit. An exception from a hook or
        from a nested execute() undoes all of it and is re-raised.

        An empty transaction is APPLIED without being logged. A known
        intent_id is ALREADY_APPLIED. A failed check is REJECTED, with the
        reason in last_rejection.
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        snapshot = self._snapshot()

        for wallet_id in pending.wallets_to_create:
            if wallet_id not in self.registered_wallets:
                self.register_wallet(wallet_id)
        for unit in pending.units_to_create:
            if unit.symbol not in self.units:
                self.register_unit(unit)

        valid, reason = self._validate_pending(pending)
        if not valid:
            self._restore(snapshot)
            self.last_rejection = reason
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
            wallets_to_create=pending.wallets_to_create,
        )

        # Effects
        for sc in tx.state_changes:
            new_state = sc.new_state if isinstance(sc.new_state, dict) else {}
            self.units[sc.unit] = replace(self.units[sc.unit], _frozen_state=_freeze_state(new_state))
        if tx.origin.nonce is not None:
            self.nonces[tx.origin.source_id] = tx.origin.nonce + 1
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)
        self.last_rejection = None

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")

        # Interactions
        try:
            self._execute_moves(tx.moves)
        except Exception:
            self._restore(snapshot)
            if self.verbose:
                print(f"✗ ROLLED BACK: {tx.exec_id}")
            raise

        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the transaction box with a status row in place of its bottom edge."""
        box = repr(tx).split('\n')
        bottom = box.pop()
        status = f" {icon} {result} at block time {self._current_time}"
        box.append("├" + bottom[1:-1] + "┤")
        box.append("│" + status.ljust(len(bottom) - 2) + "│")
        box.append(bottom)
        print("\n".join(box))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Every check that can reject a transaction, against current state.

        The clock, the caller nonce and each storage snapshot come first, then
        registration, transfer rules and the net balance effect of all moves.
        Returns (ok, reason).
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        origin = pending.origin
        if origin.nonce is not None and origin.nonce != self.get_nonce(origin.source_id):
            return False, (
                f"stale nonce for {origin.source_id}: "
                f"{origin.nonce} != {self.get_nonce(origin.source_id)}"
            )

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.old_state is not None:
                old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
                if old_state != self.units[sc.unit].state:
                    return False, f"stale state for {sc.unit}"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            for wallet in (move.source, move.dest):
                if wallet not in self.registered_wallets:
                    return False, f"wallet not registered: {wallet}"
            rule = self.units[move.unit_symbol].transfer_rule
            if rule is None:
                continue
            try:
                rule(self, move)
            except TransferRuleViolation as e:
                return False, str(e)

        # Limits apply to where each balance ends up after all moves, so a
        # contract may pay out what the same transaction pays in.
        deltas: Dict[Tuple[str, str], Decimal] = defaultdict(Decimal)
        for move in pending.moves:
            deltas[move.source, move.unit_symbol] -= move.quantity
            deltas[move.dest, move.unit_symbol] += move.quantity

        for (wallet, symbol), delta in deltas.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[symbol]
            after = unit.round(self.balances[wallet][symbol] + delta)
            if not unit.min_balance <= after <= unit.max_balance:
                bound = (f"min {unit.min_balance}" if after < unit.min_balance
                         else f"max {unit.max_balance}")
                return False, f"{wallet} {symbol}: would hold {after}, outside {bound}"

        return True, ""

    def _write_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """Set one balance and mirror it into the per-unit holder index."""
        self.balances[wallet_id][unit_symbol] = quantity
        holders = self._positions_by_unit[unit_symbol]
        if quantity:
            holders[wallet_id] = quantity
        else:
            holders.pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """
        Apply moves in order. After each credit the recipient's hook runs
        and may re-enter execute().

        Raises:
            LedgerError: If a hook spent what a later move was going to debit
        """
        for move in moves:
            unit = self.units[move.unit_symbol]
            symbol = move.unit_symbol
            remaining = unit.round(self.balances[move.source][symbol] - move.quantity)
            if move.source != SYSTEM_WALLET and remaining < unit.min_balance:
                raise LedgerError(
                    f"{move.source} {symbol}: balance changed during execution"
                )
            self._write_balance(move.source, symbol, remaining)
            self._write_balance(
                move.dest, symbol, unit.round(self.balances[move.dest][symbol] + move.quantity)
            )

            on_receive = self.receive_hooks.get(move.dest)
            if on_receive is not None:
                on_receive(self, move)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def _snapshot(self) -> Dict[str, Any]:
        """Capture everything execute() can change, for rollback."""
        return {
            'balances': {w: dict(b) for w, b in self.balances.items()},
            'units': dict(self.units),
            'registered_wallets': set(self.registered_wallets),
            'seen_intent_ids': set(self.seen_intent_ids),
            'log_length': len(self.transaction_log),
            'nonces': dict(self.nonces),
            'receive_hooks': dict(self.receive_hooks),
            'next_sequence': self._next_sequence,
            'positions': {u: dict(p) for u, p in self._positions_by_unit.items()},
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        """Return the ledger to a state captured by _snapshot()."""
        self.balances = {
            w: defaultdict(lambda: Decimal("0"), b) for w, b in snapshot['balances'].items()
        }
        self.units = snapshot['units']
        self.registered_wallets = snapshot['registered_wallets']
        self.seen_intent_ids = snapshot['seen_intent_ids']
        del self.transaction_log[snapshot['log_length']:]
        self.nonces = snapshot['nonces']
        self.receive_hooks = snapshot['receive_hooks']
        self._next_sequence = snapshot['next_sequence']
        self._positions_by_unit = defaultdict(dict, snapshot['positions'])

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        A separate ledger in the same state, for trying out a scenario.

        Receive hooks are the same callables in both ledgers. A hook acts on
        whichever ledger it is invoked by.
        """
        cloned = Ledger(self.name, self._current_time, verbose=self.verbose, test_mode=self._test_mode)
        cloned._restore(self._snapshot())
        cloned.transaction_log = list(self.transaction_log)
        cloned.last_rejection = self.last_rejection
        return cloned
