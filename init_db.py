#!/usr/bin/env python3
"""
Database maintenance

    python init_db.py            create all tables
    python init_db.py purge      delete codes past the retention window
"""
import sys
from datetime import timedelta

from codegate.config import settings
from codegate.core.database import Base, SessionLocal, engine
from codegate.models import *  # noqa: F401,F403
from codegate.models.verification_code import utcnow
from codegate.services.code_store import CodeStore


def create_tables():
    try:
        Base.metadata.create_all(bind=engine)
        print("✅ Tables created")
        for table_name in Base.metadata.tables.keys():
            print(f"  - {table_name}")
    except Exception as e:
        print(f"❌ Failed to create tables: {e}")
        sys.exit(1)


def purge_expired_codes():
    cutoff = utcnow() - timedelta(days=settings.code_retention_days)
    db = SessionLocal()
    try:
        deleted = CodeStore(db).purge_expired(cutoff)
        print(f"✅ Deleted {deleted} codes that expired before {cutoff.isoformat()}")
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "purge":
        purge_expired_codes()
    else:
        create_tables()
