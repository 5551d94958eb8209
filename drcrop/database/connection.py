from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# Base class for ORM models
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine and session factory for one database URL.

    Constructed once by the app factory, opened at startup and disposed at
    shutdown. Request handlers receive it through a dependency.
    """

    def __init__(self, url: str):
        self.url = url
        if url.startswith("sqlite"):
            # SQLite needs this special argument to work with FastAPI
            self.engine = create_engine(url, future=True, connect_args={"check_same_thread": False})
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(url, future=True, pool_pre_ping=True)

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    def open(self) -> None:
        """Ensure the SQLite directory exists and create tables."""
        if self.url.startswith("sqlite"):
            database = make_url(self.url).database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)

        # Register the models on Base before creating tables.
        from drcrop.models import analysis, user  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()
