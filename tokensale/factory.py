"""
factory.py - Contract Deployment

ContractFactory instantiates token, airdrop and crowdsale contracts on a
ContractRuntime. The deployer becomes the owner. A deployment is a single
transaction that registers the contract wallet, creates the unit and (for
tokens) issues the initial supply to the deployer.

Addresses are deterministic: "0x" followed by the first 40 hex digits of
sha256(factory name, deployer, deployer nonce).

Example:
    factory = ContractFactory(runtime)
    token = factory.deploy_burnable_token("alice", 10_000_000, 18, "Sale Token", "SALE")
    sale = factory.deploy_ico("alice", token, 18, eth_soft_cap=5, rate=500, duration_days=30)
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple
import hashlib

from .core import (
    LedgerView, Unit, TransactionOrigin, OriginType,
    UNIT_TYPE_TOKEN,
    UnitNotRegistered,
    build_transaction, missing_wallets, require_identity,
)
from .units.token import create_token_unit, issuance_moves
from .units.crowdsale import create_crowdsale_unit
from .units.disbursement import create_disbursement_unit


class ContractKind(Enum):
    SIMPLE_TOKEN = "simple_token"
    MINTABLE_TOKEN = "mintable_token"
    BURNABLE_TOKEN = "burnable_token"
    MINTABLE_BURNABLE_TOKEN = "mintable_burnable_token"
    AIRDROP = "airdrop"
    ICO = "ico"


# (mintable, burnable) per token kind
TOKEN_CAPABILITIES: Dict[ContractKind, Tuple[bool, bool]] = {
    ContractKind.SIMPLE_TOKEN: (False, False),
    ContractKind.MINTABLE_TOKEN: (True, False),
    ContractKind.BURNABLE_TOKEN: (False, True),
    ContractKind.MINTABLE_BURNABLE_TOKEN: (True, True),
}


def contract_address(factory_name: str, deployer: str, nonce: int) -> str:
    """Deterministic address of the contract deployed by deployer at nonce."""
    digest = hashlib.sha256(f"{factory_name}|{deployer}|{nonce}".encode()).hexdigest()
    return "0x" + digest[:40]


def _require_token(view: LedgerView, token: str) -> None:
    try:
        unit = view.get_unit(token)
    except UnitNotRegistered:
        raise ValueError(f"no token deployed at {token}") from None
    if unit.unit_type != UNIT_TYPE_TOKEN:
        raise ValueError(f"{token} is a {unit.unit_type}, not a token")


class ContractFactory:
    """
    Deploys contracts of every ContractKind on a runtime.

    Attributes:
        runtime: The ContractRuntime deployments are submitted to
        name: Factory identity, mixed into derived addresses
        deployments: address -> (kind, deployer), in deployment order
    """

    def __init__(self, runtime, name: str = "factory"):
        self.runtime = runtime
        self.name = name
        self.deployments: Dict[str, Tuple[ContractKind, str]] = {}

    def create(self, kind: ContractKind, params: Dict[str, Any], caller: str) -> str:
        """
        Deploy a contract of the given kind, owned by caller.

        Args:
            kind: What to deploy
            params: Constructor arguments for the kind:
                tokens  - total_supply, decimals, name, symbol
                AIRDROP - token
                ICO     - token, decimals, eth_soft_cap, rate, duration_days
            caller: Deployer and owner

        Returns:
            The new contract's address

        Raises:
            ValueError: If params are missing or invalid, or the token does not exist
            InvalidRecipient: If caller is null or reserved
            TransactionRejected: If the ledger rejects the deployment
        """
        require_identity(caller)
        ledger = self.runtime.ledger
        nonce = ledger.get_nonce(caller)
        address = contract_address(self.name, caller, nonce)
        unit, moves = self._build_unit(kind, dict(params), caller, address)

        origin = TransactionOrigin(
            origin_type=OriginType.DEPLOYMENT,
            source_id=caller,
            unit_symbol=address,
            event_type=f"DEPLOY_{kind.name}",
            nonce=nonce,
        )
        pending = build_transaction(
            ledger, moves, [], origin,
            units_to_create=(unit,),
            wallets_to_create=missing_wallets(ledger, address, caller),
        )
        self.runtime.submit(pending)
        self.deployments[address] = (kind, caller)
        return address

    def _build_unit(
        self,
        kind: ContractKind,
        params: Dict[str, Any],
        caller: str,
        address: str,
    ) -> Tuple[Unit, List]:
        try:
            if kind in TOKEN_CAPABILITIES:
                mintable, burnable = TOKEN_CAPABILITIES[kind]
                unit = create_token_unit(
                    address,
                    total_supply=params['total_supply'],
                    decimals=params['decimals'],
                    name=params['name'],
                    symbol=params['symbol'],
                    mintable=mintable,
                    burnable=burnable,
                    owner=caller,
                )
                return unit, issuance_moves(unit)

            ledger = self.runtime.ledger
            _require_token(ledger, params['token'])
            if kind == ContractKind.AIRDROP:
                return create_disbursement_unit(address, params['token'], caller), []
            if kind == ContractKind.ICO:
                unit = create_crowdsale_unit(
                    address,
                    token=params['token'],
                    currency=self.runtime.currency,
                    decimals=params['decimals'],
                    eth_soft_cap=params['eth_soft_cap'],
                    rate=params['rate'],
                    duration_days=params['duration_days'],
                    owner=caller,
                    created_at=ledger.current_time,
                )
                return unit, []
        except KeyError as e:
            raise ValueError(f"{kind.name} deployment is missing parameter {e}") from None
        raise ValueError(f"unknown contract kind: {kind!r}")

    def deployed_by(self, caller: str) -> List[str]:
        """Addresses deployed by caller, oldest first."""
        return [addr for addr, (_, who) in self.deployments.items() if who == caller]

    def kind_of(self, address: str) -> Optional[ContractKind]:
        entry = self.deployments.get(address)
        return entry[0] if entry else None

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    def _deploy_token(self, kind, caller, total_supply, decimals, name, symbol) -> str:
        return self.create(kind, {
            'total_supply': total_supply,
            'decimals': decimals,
            'name': name,
            'symbol': symbol,
        }, caller)

    def deploy_simple_token(self, caller: str, total_supply, decimals: int, name: str, symbol: str) -> str:
        return self._deploy_token(ContractKind.SIMPLE_TOKEN, caller, total_supply, decimals, name, symbol)

    def deploy_mintable_token(self, caller: str, total_supply, decimals: int, name: str, symbol: str) -> str:
        return self._deploy_token(ContractKind.MINTABLE_TOKEN, caller, total_supply, decimals, name, symbol)

    def deploy_burnable_token(self, caller: str, total_supply, decimals: int, name: str, symbol: str) -> str:
        return self._deploy_token(ContractKind.BURNABLE_TOKEN, caller, total_supply, decimals, name, symbol)

    def deploy_mintable_burnable_token(self, caller: str, total_supply, decimals: int, name: str, symbol: str) -> str:
        return self._deploy_token(
            ContractKind.MINTABLE_BURNABLE_TOKEN, caller, total_supply, decimals, name, symbol
        )

    def deploy_airdrop(self, caller: str, token: str) -> str:
        return self.create(ContractKind.AIRDROP, {'token': token}, caller)

    def deploy_ico(
        self,
        caller: str,
        token: str,
        decimals: int,
        eth_soft_cap,
        rate,
        duration_days: int,
    ) -> str:
        return self.create(ContractKind.ICO, {
            'token': token,
            'decimals': decimals,
            'eth_soft_cap': eth_soft_cap,
            'rate': rate,
            'duration_days': duration_days,
        }, caller)
