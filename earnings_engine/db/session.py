# earnings_engine/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from earnings_engine.core.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
