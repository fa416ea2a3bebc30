"""
BETSYNC - Core Module
Configuration, cache backend, transactional store, security and errors.
"""

from app.core.config import Settings, get_settings, settings
from app.core.database import (
    Base,
    DatabaseManager,
    db_manager,
    init_db,
    close_db,
    TransactionManager,
    QueryBuilder,
)
from app.core.cache import (
    CacheManager,
    cache_manager,
    CachePrefix,
    CircuitBreaker,
)
from app.core.security import (
    SecurityManager,
    security_manager,
    TokenType,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",

    # Database
    "Base",
    "DatabaseManager",
    "db_manager",
    "init_db",
    "close_db",
    "TransactionManager",
    "QueryBuilder",

    # Cache
    "CacheManager",
    "cache_manager",
    "CachePrefix",
    "CircuitBreaker",

    # Security
    "SecurityManager",
    "security_manager",
    "TokenType",
]
