"""Database layer - engine, base classes, upsert."""

from cylinder_kernel.db.base import BalanceBase, Base, TenantScoped, TrackedBase, UUIDString
from cylinder_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from cylinder_kernel.db.upsert import upsert

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "build_engine",
    "create_tables",
    "upsert",
    "Base",
    "TrackedBase",
    "UUIDString",
    "BalanceBase",
    "TenantScoped",
]
