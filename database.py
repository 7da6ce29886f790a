# database.py
"""
SQLAlchemy database connection and session management.

This module provides:
- Database engine configuration for the backend Postgres database
- Session factory for dependency injection
- Connection utilities

The schema is owned by the backend; models in this repo are projections of
existing tables and init_db() is only meant for local and test databases.

Usage:
     from database import get_session, engine

     # In FastAPI routes:
     @router.get("/items")
     def get_items(db: Session = Depends(get_session)):
          return db.query(Item).all()
     """
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def _engine_options(url: str) -> dict:
     if url.startswith("sqlite"):
          # Single shared connection so in-memory databases survive across sessions
          return {
               "connect_args": {"check_same_thread": False},
               "poolclass": StaticPool,
          }
     return {
          "poolclass": QueuePool,
          "pool_size": 5,
          "max_overflow": 10,
          "pool_timeout": 30,
          "pool_recycle": 1800,  # Recycle connections after 30 minutes
          "pool_pre_ping": True,
     }


# Create SQLAlchemy engine
engine = create_engine(
     DATABASE_URL,
     echo=settings.sql_echo,  # Log SQL if SQL_ECHO=true
     **_engine_options(DATABASE_URL),
)

# Session factory
SessionLocal = sessionmaker(
     bind=engine,
     autocommit=False,
     autoflush=False,
     expire_on_commit=False,
)


def get_session() -> Generator[Session, None, None]:
     """
     FastAPI dependency that provides a database session.

     Yields:
          Session: SQLAlchemy database session
     """
     session = SessionLocal()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


@contextmanager
def get_session_context() -> Generator[Session, None, None]:
     """
     Context manager for database sessions outside FastAPI routes,
     e.g. the scheduled trial manager.

     Usage:
          with get_session_context() as db:
               subs = db.query(LandlordSubscription).all()
     """
     session = SessionLocal()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


def init_db() -> None:
     """
     Create all mapped tables if they don't exist.

     Local and test databases only. Production tables are owned by the backend.
     """
     from models import Base
     Base.metadata.create_all(bind=engine)


def check_connection() -> bool:
     """
     Test database connectivity.

     Returns:
          bool: True if connection successful, False otherwise
     """
     try:
          with engine.connect() as conn:
               conn.execute(text("SELECT 1"))
          return True
     except SQLAlchemyError as e:
          logger.error("Database connection failed: %s", e)
          return False
