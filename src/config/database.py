"""Database configuration for WatchlistBridge."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

__all__ = ["WatchlistBridgeDB", "attach_sqlite_pragmas"]

ALEMBIC_PATH = Path(__file__).resolve().parent.parent.parent / "alembic"


class WatchlistBridgeDB:
    """Database manager for the WatchlistBridge application.

    Creates the SQLite database in the data directory, applies pending alembic
    migrations and hands out sessions.
    """

    def __init__(self, data_path: Path, *, migrate: bool = True) -> None:
        """Initializes the database manager.

        Args:
            data_path (Path): Directory where the database should be stored
            migrate (bool): Whether to run alembic migrations on startup

        Raises:
            ValueError: If data_path exists but is a file instead of a directory
        """
        self.data_path = data_path
        self.db_path = data_path / "watchlistbridge.db"

        self.engine = self._setup_db()
        self._SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        if migrate:
            self._do_migrations()

    def _setup_db(self) -> Engine:
        """Creates the data directory and the SQLite engine.

        Returns:
            Engine: Configured SQLAlchemy engine instance

        Raises:
            ValueError: If data_path exists but is a file instead of a directory
        """
        import src.models  # noqa: F401

        if not self.data_path.exists():
            self.data_path.mkdir(parents=True, exist_ok=True)
        elif self.data_path.is_file():
            raise ValueError(
                f"{self.__class__.__name__}: The path '{self.data_path}' is a file, "
                "please delete it first or choose a different data folder path",
            )

        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
            future=True,
        )
        attach_sqlite_pragmas(engine)
        return engine

    def _do_migrations(self) -> None:
        """Upgrades the schema to the latest alembic revision."""
        from alembic import command
        from alembic.config import Config

        cfg = Config()
        cfg.set_main_option("script_location", str(ALEMBIC_PATH))
        cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")

        command.upgrade(cfg, "head")

    def new_session(self) -> Session:
        """Open a new independent session."""
        return self._SessionLocal()


def attach_sqlite_pragmas(engine: Engine) -> None:
    """Enable WAL journaling and foreign key enforcement on every connection."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cur = dbapi_connection.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.execute("PRAGMA temp_store=MEMORY;")
            cur.execute("PRAGMA foreign_keys=ON;")
        finally:
            cur.close()

