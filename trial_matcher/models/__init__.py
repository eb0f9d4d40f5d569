"""Shared enums for the matching engine."""
