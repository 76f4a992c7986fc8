import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from craftstore.core.cache import CacheService
from craftstore.core.errors import AppError, ConflictError, DatabaseError


class Repository:
    """Shared plumbing: a session factory, the app's cache, and timed transactions."""

    #: message used when a unique constraint is violated
    conflict_message = "Resource already exists"

    def __init__(self, sessions: sessionmaker, cache: CacheService):
        self._sessions = sessions
        self.cache = cache
        self.logger = logging.getLogger(f"craftstore.repositories.{type(self).__name__}")

    @contextmanager
    def transaction(self, operation: str) -> Iterator[Session]:
        """Open a session inside ``BEGIN``/``COMMIT`` and translate database failures."""
        started = time.perf_counter()
        try:
            with self._sessions.begin() as session:
                yield session
        except AppError:
            raise
        except IntegrityError as exc:
            self.logger.warning("integrity_error", extra={"operation": operation, "error": str(exc.orig)})
            raise ConflictError(self.conflict_message, context={"operation": operation}) from exc
        except SQLAlchemyError as exc:
            self.logger.error("database_error", exc_info=exc, extra={"operation": operation})
            raise DatabaseError(f"Database operation '{operation}' failed") from exc
        finally:
            self.logger.debug(
                "repository_call",
                extra={"operation": operation, "duration_ms": round((time.perf_counter() - started) * 1000, 2)},
            )
