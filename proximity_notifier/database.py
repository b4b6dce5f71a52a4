from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from proximity_notifier.config import settings

# Database setup
engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
