from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from models import Base
import logging

# Configure logger
logger = logging.getLogger(__name__)

# Country normalization mapping (profile vocabulary -> corpus values)
COUNTRY_MAPPING = {
    "USA": "United States",
    "US": "United States",
    "United States": "United States",
    "UK": "United Kingdom",
    "United Kingdom": "United Kingdom",
    "Great Britain": "United Kingdom",
    "Canada": "Canada",
    "Australia": "Australia",
    "Germany": "Germany",
}

def normalize_country(country: Optional[str]) -> str:
    """Normalize country input to match database values."""
    if not country:
        return ""

    # Try exact match first
    normalized = COUNTRY_MAPPING.get(country.strip())
    if normalized:
        return normalized

    # Try case-insensitive match
    for key, value in COUNTRY_MAPPING.items():
        if key.lower() == country.strip().lower():
            return value

    # Return original if no mapping found
    return country.strip()

def _normalize_database_url(database_url: str) -> str:
    value = database_url.strip().strip('"').strip("'")
    if value.startswith("postgres://"):
        value = value.replace("postgres://", "postgresql://", 1)
    if value.startswith("postgresql://"):
        value = value.replace("postgresql://", "postgresql+psycopg2://", 1)
    return value

def get_engine(database_url: str) -> Engine:
    """Create and return database engine."""
    if not database_url:
        raise ValueError("DATABASE_URL environment variable not set")
    return create_engine(_normalize_database_url(database_url), pool_pre_ping=True)

def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

@contextmanager
def db_session(session_factory: sessionmaker):
    """Transactional scope: commit on success, rollback on any error."""
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

def verify_tables_exist(engine: Engine):
    """Ensure required tables exist, create if missing."""
    existing_tables = set(inspect(engine).get_table_names())
    missing = [name for name in Base.metadata.tables if name not in existing_tables]
    if missing:
        logger.info(f"Creating missing tables: {', '.join(missing)}")
    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    Base.metadata.create_all(bind=engine)
