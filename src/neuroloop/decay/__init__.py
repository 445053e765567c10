"""Decay and regression: pure rule calculators plus idempotent state transitions."""
