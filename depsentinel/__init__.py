"""DepSentinel — multi-repository dependency inventory."""

__version__ = "0.1.0"
