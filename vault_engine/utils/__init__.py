"""Shared utilities: fixed-point math, clocks, config and logging."""
