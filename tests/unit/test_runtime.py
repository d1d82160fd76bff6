"""
test_runtime.py - Unit tests for ContractRuntime

Tests:
- Native currency registration and funding
- Plain sends and payment routing by unit type
- Rejections surfaced as TransactionRejected
- Account registration with receive hooks
- Clock helpers
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from tokensale import (
    Ledger, ContractRuntime, Move, ExecuteResult, build_transaction,
    SYSTEM_WALLET, ZERO_ADDRESS, UNIT_TYPE_DISBURSEMENT,
    TransactionRejected, PaymentNotAccepted, InsufficientBalance, InvalidRecipient,
)
from tokensale.units import compute_transfer, get_total_raised, compute_purchase
from tests.helpers import START


class TestSetup:

    def test_registers_currency(self, ledger):
        runtime = ContractRuntime(ledger)
        assert "ETH" in ledger.list_units()
        assert runtime.currency == "ETH"

    def test_existing_currency_kept(self, ledger):
        ContractRuntime(ledger)
        ContractRuntime(ledger)
        assert ledger.list_units() == ["ETH"]

    def test_custom_currency(self):
        ledger = Ledger("test", START, verbose=False)
        runtime = ContractRuntime(ledger, currency="NEO")
        runtime.fund("bob", 5)
        assert runtime.balance("bob") == Decimal("5")


class TestFund:

    def test_fund(self, runtime):
        runtime.fund("bob", 100)
        assert runtime.balance("bob") == Decimal("100")
        assert runtime.ledger.get_balance(SYSTEM_WALLET, "ETH") == Decimal("-100")

    def test_repeat_funding_issues_again(self, runtime):
        runtime.fund("bob", 100)
        runtime.fund("bob", 100)
        assert runtime.balance("bob") == Decimal("200")

    def test_fund_zero(self, runtime):
        with pytest.raises(ValueError):
            runtime.fund("bob", 0)

    def test_fund_null(self, runtime):
        with pytest.raises(InvalidRecipient):
            runtime.fund(ZERO_ADDRESS, 1)


class TestSend:

    def test_plain_send(self, funded):
        funded.send("bob", "erin", 30)
        assert funded.balance("erin") == Decimal("30")
        assert funded.balance("bob") == Decimal("70")

    def test_send_too_much(self, funded):
        with pytest.raises(InsufficientBalance):
            funded.send("bob", "erin", 101)

    def test_send_to_null(self, funded):
        with pytest.raises(InvalidRecipient):
            funded.send("bob", ZERO_ADDRESS, 1)

    def test_routes_to_sale(self, funded, sale):
        funded.send("bob", sale, 3)
        assert get_total_raised(funded.ledger, sale) == Decimal("3")

    def test_refuses_contract_without_handler(self, funded, airdrop):
        with pytest.raises(PaymentNotAccepted):
            funded.send("bob", airdrop, 1)
        assert funded.balance("bob") == Decimal("100")

    def test_refuses_token_contract(self, funded, token):
        with pytest.raises(PaymentNotAccepted):
            funded.send("bob", token, 1)

    def test_custom_handler(self, funded, airdrop):
        received = []

        def tip_jar(view, address, payer, amount):
            received.append((address, payer, amount))
            return build_transaction(view, [Move(amount, "ETH", payer, address, "tip")])

        funded.register(UNIT_TYPE_DISBURSEMENT, tip_jar)
        funded.send("bob", airdrop, 2)
        assert received == [(airdrop, "bob", Decimal("2"))]
        assert funded.balance(airdrop) == Decimal("2")

    def test_repeated_identical_sends_all_apply(self, funded):
        for _ in range(3):
            funded.send("bob", "erin", 1)
        assert funded.balance("erin") == Decimal("3")


class TestSubmit:

    def test_rejection_raises(self, funded):
        pending = build_transaction(
            funded.ledger, [Move(Decimal("1000"), "ETH", "bob", "carol", "overdraft")]
        )
        with pytest.raises(TransactionRejected, match="bob ETH"):
            funded.submit(pending)

    def test_replay_reported(self, funded):
        pending = build_transaction(
            funded.ledger, [Move(Decimal("1"), "ETH", "bob", "carol", "once")]
        )
        assert funded.submit(pending) == ExecuteResult.APPLIED
        assert funded.submit(pending) == ExecuteResult.ALREADY_APPLIED

    def test_stale_purchase_rejected(self, funded, sale):
        first = compute_purchase(funded.ledger, sale, "bob", 1)
        second = compute_purchase(funded.ledger, sale, "carol", 1)
        funded.submit(first)
        with pytest.raises(TransactionRejected, match="stale state"):
            funded.submit(second)

    def test_call(self, runtime, token):
        assert runtime.call(compute_transfer, token, "alice", "bob", 1) == ExecuteResult.APPLIED


class TestAccounts:

    def test_register_with_hook(self, runtime):
        credits = []
        runtime.register_account("erin", on_receive=lambda l, m: credits.append(m.quantity))
        runtime.fund("erin", 7)
        assert credits == [Decimal("7")]

    def test_hook_on_existing_wallet(self, funded):
        credits = []
        funded.register_account("bob", on_receive=lambda l, m: credits.append(m.quantity))
        funded.send("carol", "bob", 4)
        assert credits == [Decimal("4")]

    def test_reserved_account(self, runtime):
        with pytest.raises(InvalidRecipient):
            runtime.register_account(SYSTEM_WALLET)


class TestClock:

    def test_advance_days(self, runtime):
        runtime.advance_days(3)
        assert runtime.now == START + timedelta(days=3)

    def test_advance_seconds(self, runtime):
        runtime.advance_seconds(90)
        assert runtime.now == START + timedelta(seconds=90)

    def test_advance_time(self, runtime):
        runtime.advance_time(START + timedelta(hours=1))
        with pytest.raises(ValueError):
            runtime.advance_time(START)
