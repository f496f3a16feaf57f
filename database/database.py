"""
Database connection and session management

Two independent stores:
  - primary: working store for generated / in-review questions, categories, usage logs
  - legacy:  store read by the consumer product; integer keys, promoted questions only
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


def _postgres_url(prefix: str, default_db: str) -> str:
    user = os.getenv(f"{prefix}POSTGRES_USER", "trivia_user")
    password = os.getenv(f"{prefix}POSTGRES_PASSWORD", "trivia_pass")
    host = os.getenv(f"{prefix}POSTGRES_HOST", "localhost")
    port = os.getenv(f"{prefix}POSTGRES_PORT", "5432")
    name = os.getenv(f"{prefix}POSTGRES_DB", default_db)
    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


# Database URLs from environment
DATABASE_URL = os.getenv("DATABASE_URL") or _postgres_url("", "trivia_pipeline")
LEGACY_DATABASE_URL = os.getenv("LEGACY_DATABASE_URL") or _postgres_url("LEGACY_", "trivia_main")


def _make_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


# Create engines
engine = _make_engine(DATABASE_URL)
legacy_engine = _make_engine(LEGACY_DATABASE_URL)

# Create session factories
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
LegacySessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=legacy_engine)

# Declarative bases, one per store
Base = declarative_base()
LegacyBase = declarative_base()


def get_db():
    """
    Database session dependency for FastAPI
    Yields a primary-store session and ensures it's closed after use
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
