# Overview: Transaction, locking and retry helpers shared by ledger mutations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import InternalError, LedgerError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns on CustomerCard/BoxState cover SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one unit of work as a single transaction.

    func must do all of its writes and commit. Any exception rolls the
    whole session back, so a failure never leaves boxes half-checked.

    - OperationalError (locks, deadlocks) and StaleDataError (optimistic
      version conflicts) are retried against fresh state with backoff.
    - LedgerError subclasses propagate unchanged.
    - Any other SQLAlchemyError is wrapped in InternalError.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except LedgerError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.exception("Ledger write conflict not resolved after %s attempts", attempts)
                raise InternalError("Concurrent update could not be applied") from exc
            current_app.logger.info("Ledger write conflict, retrying (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Ledger storage failure")
            raise InternalError("Storage failure") from exc
        except Exception:
            db.session.rollback()
            raise
