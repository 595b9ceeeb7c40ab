"""Benchmarking subsystem for perfwatch.

Provides tools for timing operations repeatedly, reducing the samples
to summary statistics, storing reports next to a reference baseline,
and flagging regressions against that baseline.
"""
