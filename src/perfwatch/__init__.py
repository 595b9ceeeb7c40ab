"""perfwatch — micro-benchmark timing and performance regression detection."""

__version__ = "0.1.0"
