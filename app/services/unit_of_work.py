"""
Unit of Work — atomic execution of multi-record journey mutations.

Every engine mutation that touches more than one row (insert + renumber,
delete + renumber, complete + start successor, pause/resume due-date shifts)
runs inside ``with_transaction(fn)``:

    result = with_transaction(lambda uow: _do_insert(uow, journey_id, ...))

Guarantees:
    - Either every write made by ``fn`` is committed, or the session is
      rolled back and nothing is visible to other readers.
    - Losing a race against a concurrent writer (stale journey version,
      unique-constraint collision on phase_number, lock timeout) rolls back
      and re-runs ``fn`` from scratch, so the retry re-reads committed state.
    - Callbacks registered with ``uow.after_commit()`` run only after a
      successful commit, outside the transaction. Their failures are logged
      and never undo the committed work (notifications are fire-and-forget).

Engine exceptions (NotFoundError, InvalidStateError, ...) raised by ``fn``
roll back and propagate unchanged; they are never retried.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrencyError
from app.models import db

logger = logging.getLogger(__name__)

_DEFAULT_MAX_ATTEMPTS = 3

# Errors that mean "someone else committed first": retry with fresh state.
_RETRYABLE_ERRORS = (StaleDataError, IntegrityError, OperationalError)


class UnitOfWork:
    """Handle passed to the transactional function.

    Exposes the session and a post-commit hook registry.
    """

    def __init__(self, session=None) -> None:
        self.session = session or db.session
        self._after_commit: list[tuple[Callable, tuple, dict]] = []

    def after_commit(self, callback: Callable, *args: Any, **kwargs: Any) -> None:
        """Schedule ``callback(*args, **kwargs)`` to run once the unit commits."""
        self._after_commit.append((callback, args, kwargs))

    def flush(self) -> None:
        self.session.flush()

    def _run_after_commit(self) -> None:
        for callback, args, kwargs in self._after_commit:
            try:
                callback(*args, **kwargs)
            except Exception:
                # Discard whatever the callback left pending in the session.
                self.session.rollback()
                logger.exception(
                    "Post-commit callback %s failed; committed work is kept",
                    getattr(callback, "__name__", repr(callback)),
                )


def _max_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("JOURNEY_TX_MAX_ATTEMPTS", _DEFAULT_MAX_ATTEMPTS))
    return _DEFAULT_MAX_ATTEMPTS


def with_transaction(fn: Callable[[UnitOfWork], Any], *, max_attempts: int | None = None) -> Any:
    """Run ``fn(uow)`` as one atomic unit and commit it.

    Args:
        fn: Callable receiving a UnitOfWork. It must do all of its reads
            inside the call so a retry observes the winner's committed state.
        max_attempts: Override for JOURNEY_TX_MAX_ATTEMPTS.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        ConcurrencyError: every attempt lost to a concurrent writer.
        Any exception raised by ``fn`` (after rollback).
    """
    attempts = max_attempts or _max_attempts()
    session = db.session

    for attempt in range(1, attempts + 1):
        uow = UnitOfWork(session)
        try:
            result = fn(uow)
            session.commit()
        except _RETRYABLE_ERRORS as exc:
            session.rollback()
            if attempt >= attempts:
                logger.error(
                    "Unit of work gave up after %d attempts: %s", attempts, exc,
                )
                raise ConcurrencyError(
                    "The journey was modified concurrently; please retry."
                ) from exc
            logger.warning(
                "Unit of work conflict on attempt %d/%d, retrying: %s",
                attempt, attempts, exc.__class__.__name__,
            )
            continue
        except Exception:
            session.rollback()
            raise

        uow._run_after_commit()
        return result

    # Unreachable: the loop either returns or raises.
    raise ConcurrencyError("The journey was modified concurrently; please retry.")
