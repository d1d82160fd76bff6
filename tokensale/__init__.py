"""
tokensale - Token Ledger and Crowdsale System

Fungible tokens, a soft-cap crowdsale with refunds, batch airdrops and a
contract factory, executed on an in-process double-entry ledger.

Usage:
    from datetime import datetime
    from tokensale import Ledger, ContractRuntime, ContractFactory
    from tokensale.units import compute_transfer, compute_claim_refund

    ledger = Ledger("main", datetime(2025, 1, 1))
    runtime = ContractRuntime(ledger)
    factory = ContractFactory(runtime)

    runtime.fund("bob", 100)
    token = factory.deploy_burnable_token("alice", 10_000_000, 18, "Sale Token", "SALE")
    sale = factory.deploy_ico("alice", token, 18, eth_soft_cap=5, rate=500, duration_days=30)
    runtime.call(compute_transfer, token, "alice", sale, 1_000_000)

    runtime.send("bob", sale, 35)        # implicit purchase: 17,500 tokens
"""

__version__ = "0.1.0"

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    call_origin,
    Unit,
    UnitStateChange,
    ExecuteResult,
    native_currency,
    null_recipient_rule,
    is_valid_identity,
    require_identity,
    to_amount,
    SYSTEM_WALLET,
    ZERO_ADDRESS,
    DEFAULT_NATIVE_SYMBOL,
    SECONDS_PER_DAY,
    UNIT_TYPE_NATIVE,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_CROWDSALE,
    UNIT_TYPE_DISBURSEMENT,
    # Exceptions
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    TransactionRejected,
    ContractError,
    InsufficientBalance,
    InsufficientAllowance,
    InsufficientTokenInventory,
    Unauthorized,
    MintingDisabled,
    BurningDisabled,
    NothingToRefund,
    CapNotReached,
    DeadlineCanOnlyShorten,
    InvalidRecipient,
    SaleNotActive,
    BatchTooLarge,
    PaymentNotAccepted,
)

# Ledger
from .ledger import Ledger

# Ownership
from .access import get_owner, is_owner, require_owner, compute_set_owner

# Contract units
from .units import SaleStatus, MAX_BATCH_SIZE

# Deployment and runtime
from .factory import ContractFactory, ContractKind, contract_address
from .runtime import ContractRuntime

__all__ = [
    '__version__',
    # Core types
    'LedgerView',
    'Move',
    'Transaction',
    'PendingTransaction',
    'TransactionOrigin',
    'OriginType',
    'build_transaction',
    'empty_pending_transaction',
    'call_origin',
    'Unit',
    'UnitStateChange',
    'ExecuteResult',
    'native_currency',
    'null_recipient_rule',
    'is_valid_identity',
    'require_identity',
    'to_amount',
    'SYSTEM_WALLET',
    'ZERO_ADDRESS',
    'DEFAULT_NATIVE_SYMBOL',
    'SECONDS_PER_DAY',
    'UNIT_TYPE_NATIVE',
    'UNIT_TYPE_TOKEN',
    'UNIT_TYPE_CROWDSALE',
    'UNIT_TYPE_DISBURSEMENT',
    # Exceptions
    'LedgerError',
    'TransferRuleViolation',
    'UnitNotRegistered',
    'WalletNotRegistered',
    'TransactionRejected',
    'ContractError',
    'InsufficientBalance',
    'InsufficientAllowance',
    'InsufficientTokenInventory',
    'Unauthorized',
    'MintingDisabled',
    'BurningDisabled',
    'NothingToRefund',
    'CapNotReached',
    'DeadlineCanOnlyShorten',
    'InvalidRecipient',
    'SaleNotActive',
    'BatchTooLarge',
    'PaymentNotAccepted',
    # Ledger
    'Ledger',
    # Ownership
    'get_owner',
    'is_owner',
    'require_owner',
    'compute_set_owner',
    # Contracts
    'SaleStatus',
    'MAX_BATCH_SIZE',
    'ContractFactory',
    'ContractKind',
    'contract_address',
    'ContractRuntime',
]
