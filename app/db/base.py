from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import logging
import os

logger = logging.getLogger(__name__)


def resolve_database_url(environ=os.environ):
    """
    Pick the database for this process.

    Order: POSTGRES_URL, then the Supabase Postgres credentials, then
    DATABASE_URL with a local SQLite file as the last resort. Returns the URL
    and the connect_args the driver needs.
    """
    postgres_url = environ.get("POSTGRES_URL", "")
    if postgres_url:
        logger.info("Using direct PostgreSQL URL")
        return postgres_url, {}

    host = environ.get("SUPABASE_HOST", "")
    password = environ.get("SUPABASE_PASSWORD", "")
    if host and password:
        user = environ.get("SUPABASE_USER", "postgres")
        port = environ.get("SUPABASE_PORT", "5432")
        name = environ.get("SUPABASE_DB", "postgres")
        logger.info(f"Using Supabase PostgreSQL at {host}")
        return f"postgresql://{user}:{password}@{host}:{port}/{name}", {}

    # OTP records are only shared between workers that point at the same file
    url = environ.get("DATABASE_URL", "sqlite:///./app.db")
    logger.info(f"Using {url.split(':', 1)[0]} database from DATABASE_URL")
    return url, ({"check_same_thread": False} if url.startswith("sqlite") else {})


DATABASE_URL, connect_args = resolve_database_url()

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True, pool_recycle=300)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
