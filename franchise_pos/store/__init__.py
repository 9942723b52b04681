"""Persistence layer: the Store interface and its implementations."""
from flask import g

from franchise_pos.database import get_session
from franchise_pos.store.base import Store
from franchise_pos.store.memory import MemoryStore
from franchise_pos.store.sqlalchemy_store import SqlAlchemyStore


def get_store() -> Store:
    """Request-scoped store over the app's scoped session."""
    if 'store' not in g:
        g.store = SqlAlchemyStore(get_session())
    return g.store


__all__ = ['Store', 'MemoryStore', 'SqlAlchemyStore', 'get_store']
