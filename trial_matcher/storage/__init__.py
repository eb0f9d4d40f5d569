"""Persistence: database engine, ORM models and repositories."""
