# forecast_app/core/db.py
import asyncio
from contextlib import asynccontextmanager
from psycopg_pool import AsyncConnectionPool
from .config import settings

_pool: AsyncConnectionPool | None = None
_pool_lock = asyncio.Lock()

async def init_pool() -> AsyncConnectionPool:
    """Initialize a single global pool (idempotent). A failed open leaves nothing cached."""
    global _pool
    async with _pool_lock:
        if _pool is None:
            pool = AsyncConnectionPool(
                conninfo=settings.DATABASE_DSN,
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_MAX_SIZE,
                open=False,
                timeout=settings.DB_POOL_TIMEOUT,
            )
            try:
                # fail-fast if DSN wrong
                await pool.open(wait=True, timeout=settings.DB_POOL_TIMEOUT)
            except Exception:
                await pool.close()
                raise
            _pool = pool
    return _pool

async def close_pool() -> None:
    global _pool
    async with _pool_lock:
        if _pool is not None:
            await _pool.close()
            _pool = None

@asynccontextmanager
async def get_conn():
    """Borrow a single connection from the pool; commits on clean exit."""
    pool = _pool if _pool is not None else await init_pool()
    async with pool.connection() as conn:
        yield conn
