from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from stockflow.core.config import settings
from stockflow.core.errors import DuplicateKeyError

engine_options = settings.engine_options()
if settings.uses_sqlite:
    # Request handlers run on a thread pool.
    engine_options["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, **engine_options)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate key", "unique violation")


def is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return any(marker in message for marker in _UNIQUE_VIOLATION_MARKERS)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a block as one transaction: commit on success, roll back on any error."""
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if is_unique_violation(exc):
            raise DuplicateKeyError("Record violates a uniqueness constraint", constraint=str(exc.orig)) from exc
        raise
    except BaseException:
        db.rollback()
        raise
