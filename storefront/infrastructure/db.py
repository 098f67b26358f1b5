from typing import Iterator, Optional
from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from storefront.core_settings import Settings
from storefront.domain.models import Base
from storefront.application.errors import DatabaseNotConfigured

class Database:
    """Engine + session factory for one configured database."""

    def __init__(self, url: str):
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.url = url
        self.engine: Engine = create_engine(url, echo=False, future=True, pool_pre_ping=True, connect_args=connect_args)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False)

    def session(self) -> Session:
        return self.SessionLocal()

    def init_models(self):
        Base.metadata.create_all(self.engine)

    def ping(self):
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()

    def dispose(self):
        self.engine.dispose()

def build_database(settings: Settings) -> Optional[Database]:
    """Resolve the optional database handle once at startup."""
    url = settings.database_url
    if not url:
        return None
    return Database(url)

def get_optional_database(request: Request) -> Optional[Database]:
    return getattr(request.app.state, "database", None)

def get_db(request: Request) -> Iterator[Session]:
    database = get_optional_database(request)
    if database is None:
        raise DatabaseNotConfigured()
    db = database.session()
    try:
        yield db
    finally:
        db.close()
