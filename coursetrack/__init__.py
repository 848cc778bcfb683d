"""Course progress aggregation and at-risk tracking service."""

__version__ = "0.1.0"
