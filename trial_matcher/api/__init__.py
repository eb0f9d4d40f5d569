"""API module for FastAPI endpoints."""
from .routes import match, terms

__all__ = ["match", "terms"]
