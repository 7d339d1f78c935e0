"""
Store Gateway Module

Usage:
    from qrorder.store import get_store

    @app.get("/orders/{order_id}")
    async def get_order(order_id: str, store: BaseStore = Depends(get_store)):
        ...

Background workers open their own session with ``open_store()``.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from qrorder.database import async_session_maker, get_db
from qrorder.store.base import BaseStore
from qrorder.store.sqlalchemy_store import SQLAlchemyStore


async def get_store(db: AsyncSession = Depends(get_db)) -> BaseStore:
    """FastAPI dependency: a store bound to the request's session."""
    return SQLAlchemyStore(db)


@asynccontextmanager
async def open_store(session_maker=async_session_maker) -> AsyncIterator[BaseStore]:
    """Open a store on a fresh session, for work outside a request."""
    async with session_maker() as session:
        yield SQLAlchemyStore(session)


__all__ = [
    "BaseStore",
    "SQLAlchemyStore",
    "get_store",
    "open_store",
]
