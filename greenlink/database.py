"""Async SQLAlchemy engine, session factory and request-scoped dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from greenlink.config import get_settings
from greenlink.repositories import SqlStore

engine = create_async_engine(
	get_settings().database_url,
	pool_pre_ping=True,
	pool_size=10,
	max_overflow=5,
)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def store_scope() -> AsyncIterator[SqlStore]:
	"""One unit of work; uncommitted changes are rolled back on exit."""
	async with async_session_factory() as session:
		yield SqlStore(session)


async def get_store() -> AsyncIterator[SqlStore]:
	async with store_scope() as store:
		yield store
