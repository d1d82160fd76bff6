"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the token sale system.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_conservation.py - Token supply and currency conservation
2. test_atomicity.py - All-or-nothing operations
3. test_idempotency.py - Replay protection and single refunds
4. test_allowances.py - Delegated transfer discipline
5. test_sale_rules.py - Purchase arithmetic, cap-gated withdrawal, deadlines
6. test_reentrancy.py - Receive hooks re-entering contracts
7. test_determinism.py - Replays and clones reach identical state
8. test_temporal.py - Block clock ordering and deadline evaluation
9. test_canonicalization.py - Canonical hashing of amounts and contract state

These tests use hypothesis for property-based testing.
"""
