"""SQLAlchemy database models for the notepad store."""
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import (Boolean, Column, Index, Integer, String, Text,
                        create_engine, event, inspect, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from notepad_store.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()

# Connection PRAGMAs applied to every new SQLite connection
SQLITE_PRAGMAS = (
    # WAL mode: writers don't block readers and a crash can't tear a page
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA cache_size=-64000",  # 64MB cache
    "PRAGMA temp_store=MEMORY",
    "PRAGMA mmap_size=268435456",  # 256MB
)

# Columns added to ``files`` after the first release, as (name, DDL)
_TREE_COLUMNS = (
    ("is_folder", "INTEGER NOT NULL DEFAULT 0"),
    ("parent_id", "TEXT NOT NULL DEFAULT ''"),
    ("sort_order", "INTEGER NOT NULL DEFAULT 0"),
    ("is_deleted", "INTEGER NOT NULL DEFAULT 0"),
    ("deleted_at", "INTEGER NOT NULL DEFAULT 0"),
)


class DBFile(Base):
    """Database model for a file or folder node."""
    __tablename__ = "files"
    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)
    tags = Column(Text, nullable=True)
    is_folder = Column(Boolean, nullable=False, default=False)
    parent_id = Column(String(64), nullable=False, default="", index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_files_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        """Return string representation of the node."""
        return (
            f"<File(id='{self.id}', title='{self.title}', "
            f"parent='{self.parent_id}', deleted={self.is_deleted})>"
        )


class DBSettings(Base):
    """Database model for the singleton settings row (id = 1)."""
    __tablename__ = "settings"
    id = Column(Integer, primary_key=True)
    theme = Column(Text, nullable=False, default="light")
    editor_opts = Column(Text, nullable=True)
    sync_enabled = Column(Integer, nullable=True)
    sync_endpoint = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Settings(theme='{self.theme}', sync_enabled={self.sync_enabled})>"


def create_store_engine(database_path: Union[str, Path]) -> Engine:
    """Create an engine for an SQLite store file with the PRAGMAs applied.

    Does not create or migrate tables; ``init_db`` does that.
    """
    # SQLite is single-writer, so a small pool is ideal
    engine = create_engine(
        f"sqlite:///{database_path}",
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    return engine


def init_db(database_path: Optional[Union[str, Path]] = None) -> Engine:
    """Initialize the store with hardened configuration.

    Creates the tables, brings legacy ``files`` tables up to the tree
    schema and seeds the settings row. Safe to call on every startup.

    Args:
        database_path: SQLite file. Defaults to the configured store path.

    Returns:
        The shared engine for all repositories.
    """
    if database_path is None:
        database_path = config.get_database_path()
    else:
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_store_engine(database_path)
    Base.metadata.create_all(engine)

    # Run migrations for schema updates
    _migrate_add_tree_columns(engine)
    _seed_settings(engine)

    return engine


def _migrate_add_tree_columns(engine: Engine) -> None:
    """Migration: add the tree columns to databases created before folders.

    SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
    the schema first. This is idempotent and safe to run multiple times.
    """
    inspector = inspect(engine)
    columns = {col['name'] for col in inspector.get_columns('files')}
    missing = [(name, ddl) for name, ddl in _TREE_COLUMNS if name not in columns]
    if not missing:
        return

    with engine.begin() as conn:
        for name, ddl in missing:
            conn.execute(text(f"ALTER TABLE files ADD COLUMN {name} {ddl}"))
        if any(name == "parent_id" for name, _ in missing):
            conn.execute(text(
                "CREATE INDEX IF NOT EXISTS ix_files_parent_id ON files(parent_id)"
            ))


def _seed_settings(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(text(
            "INSERT OR IGNORE INTO settings (id, theme) VALUES (1, 'light')"
        ))


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine)
