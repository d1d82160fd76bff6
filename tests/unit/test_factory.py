"""
test_factory.py - Unit tests for contract deployment
"""

import pytest
from decimal import Decimal

from tokensale import (
    ContractKind, contract_address, SYSTEM_WALLET,
    UNIT_TYPE_TOKEN, UNIT_TYPE_CROWDSALE, UNIT_TYPE_DISBURSEMENT,
    InvalidRecipient, ZERO_ADDRESS,
)
from tokensale.units import (
    get_token_info, is_mintable, is_burnable, total_supply, balance_of,
    get_rate, get_eth_soft_cap, get_token_address, get_sale_status, SaleStatus,
)
from tokensale.access import get_owner
from tests.helpers import START, assert_token_conserved


TOKEN_PARAMS = {'total_supply': 500, 'decimals': 18, 'name': 'Test Token', 'symbol': 'Test'}


class TestAddresses:

    def test_deterministic(self):
        assert contract_address("factory", "alice", 0) == contract_address("factory", "alice", 0)

    def test_shape(self):
        address = contract_address("factory", "alice", 0)
        assert address.startswith("0x")
        assert len(address) == 42

    def test_varies_with_nonce_and_deployer(self):
        assert contract_address("factory", "alice", 0) != contract_address("factory", "alice", 1)
        assert contract_address("factory", "alice", 0) != contract_address("factory", "bob", 0)

    def test_consecutive_deployments_differ(self, factory):
        a = factory.deploy_simple_token("alice", 1, 0, "A", "A")
        b = factory.deploy_simple_token("alice", 1, 0, "A", "A")
        assert a != b
        assert factory.deployed_by("alice") == [a, b]


class TestTokenKinds:

    @pytest.mark.parametrize("kind, mintable, burnable", [
        (ContractKind.SIMPLE_TOKEN, False, False),
        (ContractKind.MINTABLE_TOKEN, True, False),
        (ContractKind.BURNABLE_TOKEN, False, True),
        (ContractKind.MINTABLE_BURNABLE_TOKEN, True, True),
    ])
    def test_deploy_token(self, factory, ledger, kind, mintable, burnable):
        address = factory.create(kind, TOKEN_PARAMS, "alice")
        assert ledger.get_unit(address).unit_type == UNIT_TYPE_TOKEN
        assert is_mintable(ledger, address) is mintable
        assert is_burnable(ledger, address) is burnable
        assert get_owner(ledger, address) == "alice"
        assert balance_of(ledger, address, "alice") == Decimal("500")
        assert total_supply(ledger, address) == Decimal("500")
        assert factory.kind_of(address) == kind
        assert_token_conserved(ledger, address)

    def test_wrappers(self, factory, ledger):
        for deploy in (
            factory.deploy_simple_token,
            factory.deploy_mintable_token,
            factory.deploy_burnable_token,
            factory.deploy_mintable_burnable_token,
        ):
            address = deploy("alice", 500, 18, "Test Token", "Test")
            assert get_token_info(ledger, address)['name'] == "Test Token"

    def test_contract_wallet_registered(self, factory, ledger):
        address = factory.deploy_simple_token("alice", 1, 0, "A", "A")
        assert ledger.is_registered(address)

    def test_zero_supply(self, factory, ledger):
        address = factory.deploy_simple_token("alice", 0, 0, "Empty", "E")
        assert total_supply(ledger, address) == 0
        assert ledger.get_balance(SYSTEM_WALLET, address) == 0

    def test_deployment_is_one_transaction(self, factory, ledger):
        factory.deploy_simple_token("alice", 5, 0, "A", "A")
        assert len(ledger.transaction_log) == 1
        tx = ledger.transaction_log[0]
        assert tx.origin.event_type == "DEPLOY_SIMPLE_TOKEN"
        assert len(tx.units_to_create) == 1

    def test_missing_param(self, factory):
        with pytest.raises(ValueError, match="missing parameter"):
            factory.create(ContractKind.SIMPLE_TOKEN, {'total_supply': 1}, "alice")

    def test_null_deployer(self, factory):
        with pytest.raises(InvalidRecipient):
            factory.create(ContractKind.SIMPLE_TOKEN, TOKEN_PARAMS, ZERO_ADDRESS)


class TestAuxiliaryKinds:

    def test_deploy_airdrop(self, factory, ledger, token):
        address = factory.deploy_airdrop("alice", token)
        assert ledger.get_unit(address).unit_type == UNIT_TYPE_DISBURSEMENT
        assert ledger.get_unit_state(address) == {'owner': 'alice', 'token': token}

    def test_deploy_ico(self, factory, ledger, token):
        address = factory.deploy_ico("alice", token, 18, 500 * 10**18, 200, 30)
        assert ledger.get_unit(address).unit_type == UNIT_TYPE_CROWDSALE
        assert get_token_address(ledger, address) == token
        assert get_rate(ledger, address) == 200
        assert get_eth_soft_cap(ledger, address) == 500 * 10**18
        assert get_sale_status(ledger, address) == SaleStatus.ACTIVE
        assert ledger.get_unit_state(address)['created_at'] == START

    def test_ico_needs_existing_token(self, factory):
        with pytest.raises(ValueError, match="no token"):
            factory.deploy_ico("alice", "0xnothing", 18, 5, 500, 30)

    def test_airdrop_needs_a_token(self, factory, token):
        sale = factory.deploy_ico("alice", token, 18, 5, 500, 30)
        with pytest.raises(ValueError, match="not a token"):
            factory.deploy_airdrop("alice", sale)

    def test_other_deployer_owns(self, factory, ledger, token):
        address = factory.deploy_ico("bob", token, 18, 5, 500, 30)
        assert get_owner(ledger, address) == "bob"
