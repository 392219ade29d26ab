from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from notifier.config.settings import settings

# Pooled engine for the API process
engine = create_async_engine(
    str(settings.DATABASE_URL),
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
    pool_recycle=3600,
    echo=False,
)

# Celery tasks run each body under a fresh asyncio.run() loop, so pooled
# connections must not outlive a task
task_engine = create_async_engine(
    str(settings.DATABASE_URL),
    poolclass=NullPool,
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)
TaskSessionLocal = async_sessionmaker(
    bind=task_engine, class_=AsyncSession, expire_on_commit=False
)
