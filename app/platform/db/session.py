from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.platform.config import settings

engine_options = {"echo": False, "future": True, "pool_pre_ping": True}
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_options.update(
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_options)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session
