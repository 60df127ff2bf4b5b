"""Copyright-infringement monitoring: search, classify, judge and review."""

__version__ = "0.1.0"
