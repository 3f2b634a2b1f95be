from pathlib import Path
from typing import Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker


Base = declarative_base()


def ensure_sqlite_dir(url: str) -> Optional[Path]:
    """Create the parent directory of a file-backed SQLite database."""
    path = make_url(url).database
    if not path or path == ":memory:" or path.startswith("file:"):
        return None
    parent = Path(path).parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


class Database:
    """Owns the engine and session factory for one process.

    Built at startup and handed to the application instead of living as
    module state, so tests and scripts can point it anywhere.
    """

    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def connect(self) -> "Database":
        if self.engine is not None:
            return self
        if self.url.startswith("sqlite"):
            ensure_sqlite_dir(self.url)
            self.engine = create_engine(
                self.url,
                future=True,
                pool_pre_ping=True,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                self.url,
                future=True,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
                pool_recycle=3600,  # Recycle connections after 1 hour
            )
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)
        return self

    def create_all(self) -> None:
        # Models must be imported so their tables are registered on Base.metadata
        from .models import models  # noqa: F401

        self.connect()
        Base.metadata.create_all(bind=self.engine)

    def health_check(self) -> bool:
        if self.engine is None:
            return False
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def session(self) -> Session:
        if self._session_factory is None:
            self.connect()
        return self._session_factory()

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._session_factory = None


def get_db(request: Request):
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
