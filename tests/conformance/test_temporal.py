"""
Temporal Conformance Tests

INVARIANT: Time-based operations respect ordering and causality.

    ∀ transactions t1, t2 in log:
        index(t1) < index(t2) ⟹ execution_time(t1) ≤ execution_time(t2)

This ensures:
- The block clock only moves forward
- Transactions built for a later time are rejected
- Sale status is evaluated against the clock at the moment of each call
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import datetime, timedelta
from decimal import Decimal

from tokensale import (
    Ledger, ExecuteResult, ContractFactory, SaleNotActive,
)
from tokensale.units import (
    SaleStatus, compute_purchase, compute_transfer, get_sale_status, ico_has_ended,
)
from tests.helpers import START, fresh_runtime


class TestClock:

    def test_advance_time_rejects_past(self, ledger):
        ledger.advance_time(START + timedelta(days=1))
        with pytest.raises(ValueError, match="backwards"):
            ledger.advance_time(START)

    def test_same_time_advance_allowed(self, ledger):
        ledger.advance_time(START)
        assert ledger.current_time == START

    def test_microsecond_precision_preserved(self, ledger):
        when = START + timedelta(microseconds=1)
        ledger.advance_time(when)
        assert ledger.current_time == when

    def test_initial_time_defaults_to_epoch(self):
        assert Ledger("test", verbose=False).current_time == datetime(1970, 1, 1)


class TestTransactionTimes:

    @given(st.lists(st.integers(min_value=0, max_value=86_400 * 3), min_size=1, max_size=10))
    @settings(max_examples=40, deadline=None)
    def test_log_times_ascending(self, gaps):
        """PROPERTY: The log is ordered by execution time."""
        runtime = fresh_runtime()
        token = ContractFactory(runtime).deploy_simple_token("alice", 100, 0, "Clock", "CLK")
        for gap in gaps:
            runtime.advance_seconds(gap)
            runtime.call(compute_transfer, token, "alice", "bob", 1)

        times = [tx.execution_time for tx in runtime.ledger.transaction_log]
        assert times == sorted(times)
        assert times[-1] == runtime.now

    def test_future_transaction_rejected(self, ledger, runtime, token):
        """A transaction built on a clone whose clock runs ahead cannot land."""
        ahead = ledger.clone()
        ahead.advance_time(START + timedelta(hours=1))
        pending = compute_transfer(ahead, token, "alice", "bob", 1)
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.last_rejection == "future timestamp"

        ledger.advance_time(START + timedelta(hours=1))
        assert ledger.execute(pending) == ExecuteResult.APPLIED


class TestSaleClock:

    def test_purchase_refused_once_deadline_passes(self, funded, sale):
        """Status is evaluated when the purchase is built."""
        funded.send("bob", sale, 1)
        funded.advance_days(31)
        assert ico_has_ended(funded.ledger, sale)
        with pytest.raises(SaleNotActive):
            compute_purchase(funded.ledger, sale, "bob", 1)

    @given(st.integers(min_value=0, max_value=40 * 86_400))
    @settings(max_examples=40, deadline=None)
    def test_status_follows_clock(self, elapsed):
        """PROPERTY: The sale is active exactly while elapsed <= duration."""
        runtime = fresh_runtime()
        factory = ContractFactory(runtime)
        token = factory.deploy_simple_token("alice", 100, 0, "Clock", "CLK")
        sale = factory.deploy_ico("alice", token, 0, 1, 1, 30)
        runtime.advance_seconds(elapsed)

        status = get_sale_status(runtime.ledger, sale)
        if elapsed <= 30 * 86_400:
            assert status == SaleStatus.ACTIVE
        else:
            assert status == SaleStatus.ENDED_FAILED
        assert runtime.balance(sale) == Decimal("0")
