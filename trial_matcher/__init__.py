"""Clinical trial eligibility matching engine."""

__version__ = "1.0.0"
