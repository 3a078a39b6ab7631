from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from smsgate.core.config import settings


DATABASE_URL = settings.sqlalchemy_url

if DATABASE_URL.startswith("sqlite"):
    # in-memory SQLite needs one connection shared across threads
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        pool_pre_ping=True,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,               # detect dead connections
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )

# session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
