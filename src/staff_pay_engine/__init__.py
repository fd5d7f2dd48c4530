"""Staff pay engine: unpaid work selection, rate resolution and invoice batching."""

__version__ = "0.1.0"
