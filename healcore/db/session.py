import asyncio
import logging
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from healcore.core.config import settings

logger = logging.getLogger(__name__)

# Parameters libpq accepts but asyncpg rejects
UNSUPPORTED_ASYNCPG_PARAMS = ("server_settings", "passfile", "channel_binding", "gssencmode", "sslmode")

NETWORK_ERRORS = (
    "Network is unreachable",
    "Connection refused",
    "No address associated with hostname",
    "Temporary failure in name resolution",
    "timeout",
)


def normalize_database_url(url: str) -> str:
    """
    Point plain postgres URLs at the asyncpg driver and drop query
    parameters asyncpg does not understand. Other drivers pass through.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if not url.startswith("postgresql+asyncpg://"):
        return url

    parsed = urlparse(url)
    params = parse_qs(parsed.query, keep_blank_values=True)
    if "connect_timeout" in params:
        params["command_timeout"] = params.pop("connect_timeout")
        logger.info("Replaced connect_timeout with command_timeout")
    for name in UNSUPPORTED_ASYNCPG_PARAMS:
        if params.pop(name, None) is not None:
            logger.info("Removed unsupported parameter: %s", name)
    query = urlencode({k: v[0] for k, v in params.items()})
    return urlunparse(parsed._replace(query=query))


_db_url = normalize_database_url(settings.DATABASE_URL)

engine = create_async_engine(
    _db_url,
    poolclass=NullPool,
    pool_pre_ping=True,
    echo=False,
)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def test_db_connection() -> bool:
    """
    Connectivity probe for health checks; never raises.
    """
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error("Database connection test failed: %s", e)
        return False


async def get_db():
    """
    Dependency that provides a database session, retrying transient
    network failures with exponential backoff.
    """
    max_retries = 3
    retry_delay = 1

    for attempt in range(max_retries):
        session = SessionLocal()
        try:
            # Connect eagerly so only connection failures are retried
            await session.connection()
            break
        except OSError as e:
            await session.close()
            if not any(err in str(e) for err in NETWORK_ERRORS):
                logger.error("Database connection failed with non-retryable OSError: %s", e)
                raise
            if attempt == max_retries - 1:
                logger.error("Database connection failed after %s attempts: %s", max_retries, e)
                raise
            logger.warning(
                "Network/connection issue, attempt %s/%s. Retrying in %ss... Error: %s",
                attempt + 1, max_retries, retry_delay, e,
            )
            await asyncio.sleep(retry_delay)
            retry_delay *= 2

    try:
        yield session
    finally:
        await session.close()
