"""
StockLedger - Tenant Context

Every client organization owns a separate store. A TenantContext pairs the
client code with a session bound to that client's store and is passed to
every service.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.config import settings
from app.database import create_session_factory, create_store_engine, init_db
from app.utils.error_handling import InvalidClientCodeException

logger = logging.getLogger(__name__)

CLIENT_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{2,50}$")


@dataclass
class TenantContext:
    """Client code and a session on that client's store."""
    client_code: str
    db: AsyncSession


def normalize_client_code(client_code: Optional[str]) -> str:
    """Validate a client code and return it upper-cased."""
    if not client_code or not CLIENT_CODE_PATTERN.match(client_code):
        raise InvalidClientCodeException(client_code)
    return client_code.upper()


class TenantStoreResolver:
    """
    Builds and caches one engine and session factory per client code.
    """

    def __init__(self, url_template: Optional[str] = None, auto_create_tables: Optional[bool] = None):
        self.url_template = url_template or settings.tenant_database_url_template
        self.auto_create_tables = (
            settings.auto_create_tables if auto_create_tables is None else auto_create_tables
        )
        self._engines: Dict[str, AsyncEngine] = {}
        self._factories: Dict[str, async_sessionmaker] = {}
        self._lock = asyncio.Lock()

    def store_url(self, client_code: str) -> str:
        code = normalize_client_code(client_code)
        return self.url_template.format(client_code=code.lower())

    async def session_factory(self, client_code: str) -> async_sessionmaker:
        code = normalize_client_code(client_code)
        factory = self._factories.get(code)
        if factory is not None:
            return factory
        async with self._lock:
            factory = self._factories.get(code)
            if factory is None:
                engine = create_store_engine(self.store_url(code))
                if self.auto_create_tables:
                    await init_db(engine)
                self._engines[code] = engine
                factory = create_session_factory(engine)
                self._factories[code] = factory
                logger.info(f"Opened store for client {code}")
        return factory

    async def open_context(self, client_code: str) -> "TenantSession":
        factory = await self.session_factory(client_code)
        return TenantSession(normalize_client_code(client_code), factory)

    async def dispose(self):
        for code, engine in self._engines.items():
            await engine.dispose()
            logger.info(f"Closed store for client {code}")
        self._engines.clear()
        self._factories.clear()


class TenantSession:
    """Async context manager yielding a TenantContext with a fresh session."""

    def __init__(self, client_code: str, factory: async_sessionmaker):
        self.client_code = client_code
        self.factory = factory
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> TenantContext:
        self._session = self.factory()
        return TenantContext(client_code=self.client_code, db=self._session)

    async def __aexit__(self, exc_type, exc, tb):
        await self._session.close()
        self._session = None


# Process-wide resolver
tenant_stores = TenantStoreResolver()


async def get_tenant_context(
    x_client_code: Optional[str] = Header(None, alias=settings.tenant_header_name),
) -> AsyncIterator[TenantContext]:
    """
    FastAPI dependency resolving the tenant from the request header.
    """
    async with await tenant_stores.open_context(x_client_code) as tenant:
        yield tenant
