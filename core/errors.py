"""Error taxonomy shared by the engine and the API layer."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from redis import exceptions as redis_exceptions
from sqlalchemy import exc as sa_exc

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors surfaced to callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Malformed input: empty content, self-like, malformed id."""

    status_code = 400


class NotFoundError(DomainError):
    """Referenced match or conversation does not exist."""

    status_code = 404


class AuthorizationError(DomainError):
    """Caller is not a participant of the referenced match."""

    status_code = 403


class TransientError(DomainError):
    """Underlying storage is temporarily unavailable. Safe to retry."""

    status_code = 503


_TRANSIENT_REDIS = (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError)


def is_transient(exc: BaseException) -> bool:
    """Tell whether a driver exception means the backend is unreachable."""
    if isinstance(exc, sa_exc.OperationalError | sa_exc.TimeoutError | sa_exc.DisconnectionError):
        return True
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, _TRANSIENT_REDIS)


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """
    Translate backend outages into TransientError.

    Integrity violations and programming errors propagate unchanged.
    """
    try:
        yield
    except DomainError:
        raise
    except (sa_exc.SQLAlchemyError, *_TRANSIENT_REDIS) as e:
        if not is_transient(e):
            raise
        logger.warning("Storage unavailable during %s: %s", operation, e)
        raise TransientError(f"Storage temporarily unavailable ({operation})") from e
