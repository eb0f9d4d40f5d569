"""API route modules."""
from . import match, terms

__all__ = ["match", "terms"]
