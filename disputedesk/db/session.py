from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from disputedesk.config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("postgresql+asyncpg"):
        return {"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS}
    if url.startswith("sqlite"):
        return {"timeout": settings.DB_COMMAND_TIMEOUT_SECONDS}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
    connect_args=_connect_args(settings.DATABASE_URL),
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
