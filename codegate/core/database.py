from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker

from codegate.config import settings
from codegate.utils.logger import db_logger

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,          # drop dead connections before use
    pool_recycle=300,
    pool_size=20,
    max_overflow=30,
    pool_timeout=30,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_database(bind=None):
    """Create any tables that are missing from the database."""
    bind = bind or engine
    try:
        inspector = inspect(bind)
        existing_tables = inspector.get_table_names()

        # register every model on Base.metadata
        import codegate.models  # noqa: F401

        expected_tables = list(Base.metadata.tables.keys())
        missing_tables = [
            table for table in expected_tables if table not in existing_tables]

        if missing_tables:
            db_logger.warning(f"Missing tables: {missing_tables}, creating...")
            Base.metadata.create_all(bind=bind)
            db_logger.warning(f"✅ Tables ready: {expected_tables}")

    except Exception as e:
        db_logger.error(f"❌ Database initialization failed: {e}")
        raise


def get_db():
    """Yield a database session for the request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
