"""SQLite engine and short-lived sessions."""
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

DB_FILENAME = "grabarr.db"

engine = None
SessionLocal = None


def _ensure_writable(directory: Path) -> None:
    """Crée le dossier de données et vérifie qu'on peut y écrire."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create data directory {directory}: {e}")
        raise
    probe = directory / ".grabarr_probe"
    try:
        probe.touch()
        probe.unlink()
    except OSError as e:
        raise PermissionError(f"Data directory {directory} is not writable: {e}")


def init_db(data_dir: str = "/data") -> None:
    """Ouvre (ou crée) la base SQLite du dossier de données."""
    global engine, SessionLocal

    directory = Path(data_dir)
    _ensure_writable(directory)
    db_path = directory / DB_FILENAME
    logger.info(f"Opening database {db_path}")

    # One connection per session: the store is also used from worker threads
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    # Records leave the session (scheduler jobs, API responses)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    from grabarr.db.models import Base
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session courte: commit en sortie, rollback sur erreur."""
    if SessionLocal is None:
        raise RuntimeError("init_db() must run before any database access")
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
