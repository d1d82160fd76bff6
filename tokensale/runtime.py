"""
runtime.py - Contract Runtime

Adapter between callers and the Ledger, standing in for the execution
environment contracts are deployed to:

1. submit() executes a PendingTransaction and turns a rejection into an error
2. send() moves native currency, dispatching payments to contracts by unit type
3. fund() issues native currency (genesis balances)
4. advance_time() / advance_days() move the block clock forward

Payment dispatch is a registry keyed by unit type, the way contracts are
registered with an engine:

    runtime = ContractRuntime(ledger)
    runtime.register(UNIT_TYPE_CROWDSALE, receive_payment)   # the default
    runtime.send("bob", sale_address, 35)                     # buys tokens
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Optional

from .core import (
    LedgerView, Move, PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, ReceiveHook,
    SYSTEM_WALLET, DEFAULT_NATIVE_SYMBOL, UNIT_TYPE_CROWDSALE, SECONDS_PER_DAY,
    TransactionRejected, InsufficientBalance, PaymentNotAccepted,
    build_transaction, call_origin, missing_wallets, native_currency,
    require_identity, to_amount,
)
from .ledger import Ledger
from .units.crowdsale import receive_payment


# (view, contract address, payer, amount) -> PendingTransaction
PaymentHandler = Callable[[LedgerView, str, str, Decimal], PendingTransaction]


class ContractRuntime:
    """
    Execution environment wrapping a Ledger.

    Features:
    - Named errors for rejected transactions (TransactionRejected)
    - Implicit purchase: currency sent to a sale buys tokens
    - Refusal of currency sent to contracts without a payment handler
    """

    def __init__(
        self,
        ledger: Ledger,
        currency: str = DEFAULT_NATIVE_SYMBOL,
        handlers: Optional[Dict[str, PaymentHandler]] = None,
    ):
        """
        Initialize the runtime.

        Args:
            ledger: The ledger to operate on
            currency: Symbol of the native currency; registered if missing
            handlers: Payment handlers (unit_type -> handler); defaults to
                crowdsale purchases
        """
        self.ledger = ledger
        self.currency = currency
        self.handlers: Dict[str, PaymentHandler] = (
            handlers if handlers is not None else {UNIT_TYPE_CROWDSALE: receive_payment}
        )
        self.verbose = ledger.verbose
        if currency not in ledger.units:
            ledger.register_unit(native_currency(currency))

    def register(self, unit_type: str, handler: PaymentHandler) -> None:
        """
        Register a payment handler for a contract unit type.

        Args:
            unit_type: Type of unit (e.g., "CROWDSALE")
            handler: Called with (view, address, payer, amount) when currency arrives
        """
        self.handlers[unit_type] = handler

    def submit(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a pending transaction on the ledger.

        Returns:
            APPLIED or ALREADY_APPLIED

        Raises:
            TransactionRejected: If the ledger rejected the transaction
        """
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(self.ledger.last_rejection or "rejected")
        return result

    def call(self, operation: Callable[..., PendingTransaction], *args, **kwargs) -> ExecuteResult:
        """Build a transaction with operation(ledger, *args, **kwargs) and submit it."""
        return self.submit(operation(self.ledger, *args, **kwargs))

    def send(self, caller: str, to: str, amount) -> ExecuteResult:
        """
        Send native currency from caller to to.

        Currency sent to a contract address is handed to the handler for the
        contract's unit type. Plain accounts just receive it.

        Raises:
            InvalidRecipient: If to is null or reserved
            PaymentNotAccepted: If to is a contract with no payment handler
            InsufficientBalance: If caller holds less than amount
        """
        amount = to_amount(amount)
        require_identity(to)

        if to in self.ledger.units:
            unit = self.ledger.get_unit(to)
            handler = self.handlers.get(unit.unit_type)
            if handler is None:
                raise PaymentNotAccepted(f"{to} ({unit.unit_type}) does not accept payments")
            if self.verbose:
                print(f"[PAYMENT] {caller} -> {to}: {amount} {self.currency} ({unit.unit_type})")
            return self.submit(handler(self.ledger, to, caller, amount))

        balance = self.ledger.get_balance(caller, self.currency)
        if balance < amount:
            raise InsufficientBalance(
                f"{caller} holds {balance} {self.currency}, cannot send {amount}"
            )
        moves = []
        if amount > 0 and caller != to:
            moves.append(Move(
                quantity=amount,
                unit_symbol=self.currency,
                source=caller,
                dest=to,
                contract_id=f'send_{self.currency}',
            ))
        pending = build_transaction(
            self.ledger, moves, [],
            call_origin(self.ledger, caller, self.currency, "SEND"),
            wallets_to_create=missing_wallets(self.ledger, to),
        )
        return self.submit(pending)

    def fund(self, wallet: str, amount) -> ExecuteResult:
        """
        Issue amount of native currency to wallet from SYSTEM_WALLET.

        Each funding is sequenced on the system wallet's nonce, so repeating
        the same funding issues again.
        """
        amount = to_amount(amount)
        require_identity(wallet)
        if amount == 0:
            raise ValueError("funding amount must be positive")
        origin = TransactionOrigin(
            origin_type=OriginType.SYSTEM,
            source_id=SYSTEM_WALLET,
            unit_symbol=self.currency,
            event_type="FUND",
            nonce=self.ledger.get_nonce(SYSTEM_WALLET),
        )
        moves = [Move(
            quantity=amount,
            unit_symbol=self.currency,
            source=SYSTEM_WALLET,
            dest=wallet,
            contract_id=f'fund_{self.currency}',
        )]
        pending = build_transaction(
            self.ledger, moves, [], origin,
            wallets_to_create=missing_wallets(self.ledger, wallet),
        )
        return self.submit(pending)

    def register_account(self, wallet: str, on_receive: Optional[ReceiveHook] = None) -> str:
        """
        Register an externally owned account, optionally with a receive hook.

        For a wallet that already exists, only the hook is installed.
        """
        require_identity(wallet)
        if self.ledger.is_registered(wallet):
            self.ledger.set_receive_hook(wallet, on_receive)
            return wallet
        return self.ledger.register_wallet(wallet, on_receive=on_receive)

    def balance(self, wallet: str, unit_symbol: Optional[str] = None) -> Decimal:
        """Balance of wallet in unit_symbol (native currency by default)."""
        return self.ledger.get_balance(wallet, unit_symbol or self.currency)

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def now(self) -> datetime:
        return self.ledger.current_time

    def advance_time(self, when: datetime) -> None:
        self.ledger.advance_time(when)

    def advance_seconds(self, seconds: int) -> None:
        self.ledger.advance_time(self.ledger.current_time + timedelta(seconds=seconds))

    def advance_days(self, days: int) -> None:
        self.advance_seconds(days * SECONDS_PER_DAY)
