"""
Storage for AccountGuard.

- schema: SQLAlchemy Core table definitions
- auth_db: connection management, transactions and record operations
"""
from .auth_db import AuthDB, get_auth_db

__all__ = ["AuthDB", "get_auth_db"]
