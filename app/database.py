import logging

from sqlalchemy import create_engine, text
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import DATABASE_URL

logger = logging.getLogger(__name__)

if DATABASE_URL.startswith("sqlite"):
    # Single shared connection so every session sees the same in-memory database
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,  # Enables pessimistic disconnect handling
        pool_recycle=300,    # Recycle connections every 5 minutes
        echo=False
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def serializable(db: Session):
    """Start a SERIALIZABLE transaction on the session.

    Isolation can only be set on a fresh connection, so any work already
    pending on the session is committed first.
    """
    if db.in_transaction():
        db.commit()
    return db.connection(execution_options={"isolation_level": "SERIALIZABLE"})


def check_database_health() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
