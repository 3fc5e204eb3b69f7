"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the solvency engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. determinism.py - Identical inputs give identical results, whatever the caller's decimal context
2. health_monotonicity.py - More collateral never lowers health; no debt means no health factor
3. liquidation_bounds.py - Bonus within [min_lb, max_lb], repay within the close factor
4. numeric_bridge.py - Integer / decimal conversions round-trip, pro-rating stays within its total

These tests use hypothesis for property-based testing.
"""
