"""
Database 패키지
"""

from collabo_pad.database.session import (
    Base,
    create_db_engine,
    get_engine,
    get_db_session,
    init_db,
    dispose_engine,
)

__all__ = [
    "Base",
    "create_db_engine",
    "get_engine",
    "get_db_session",
    "init_db",
    "dispose_engine",
]
