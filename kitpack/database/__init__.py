"""
Database package initialization.

The package follows a modular structure:
- base: declarative base and mixins
- connection: async engine and session management
- models: SQLAlchemy ORM models for catalog, orders and the usage ledger
"""

__all__ = []
