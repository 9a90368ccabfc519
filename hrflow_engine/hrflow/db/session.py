from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os

from hrflow.core.config import settings

Base = declarative_base()

def make_engine(db_url: str = None):
    db_url = db_url or os.environ.get("DB_URL", settings.DB_URL)
    # Use connect_args for SQLite to allow multithreading in simple dev setups
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_engine(db_url, echo=False, future=True, connect_args=connect_args)

def make_session_factory(db_url: str = None):
    engine = make_engine(db_url)
    return engine, sessionmaker(bind=engine, autoflush=False, autocommit=False)

def init_db(engine):
    # Import models here so they are registered on Base
    import hrflow.db.models as _models  # noqa: F401
    Base.metadata.create_all(bind=engine)
