"""Scoped transactions with rollback on abandon."""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from dbaccess.db.connection import ConnectionHandle

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    """Transaction guard lifecycle states."""
    FRESH = "fresh"
    OPEN = "open"
    DONE = "done"


class TransactionGuard:
    """One unit of work on a connection handle.

    ``begin()`` moves FRESH to OPEN and takes the handle's serialized section,
    which stays held until ``commit()``, ``rollback()`` or the end of the
    ``with`` block. Leaving the block while OPEN rolls the transaction back.

    Example:
        >>> with handle.transaction() as txn:
        ...     if txn.begin():
        ...         handle.execute("UPDATE accounts SET balance = 0")
        ...         txn.commit()
    """

    def __init__(self, handle: "ConnectionHandle") -> None:
        self.handle = handle
        self.state = TransactionState.FRESH

    def __enter__(self) -> "TransactionGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.state == TransactionState.OPEN

    def begin(self) -> bool:
        """Start the transaction.

        Returns:
            True if the transaction is open. On False the guard stays FRESH
            and the unit of work is not protected.
        """
        if self.state != TransactionState.FRESH:
            logger.warning(f"begin() called on a {self.state.value} transaction guard")
            return False

        executor = self.handle.executor
        executor.enter()
        try:
            started = self.handle.driver.begin_transaction()
        except BaseException:
            executor.leave()
            raise

        if not started:
            executor.leave()
            logger.error("Failed to begin transaction")
            return False

        self.state = TransactionState.OPEN
        self.handle.mark_used()
        logger.debug("Transaction opened")
        return True

    def commit(self) -> bool:
        """Commit the transaction.

        The guard is DONE afterwards whatever the outcome, a failed commit
        cannot be retried through the same guard.

        Returns:
            The driver's commit result, False if the guard was not OPEN.
        """
        if self.state != TransactionState.OPEN:
            return False
        return self._finish("commit")

    def rollback(self) -> bool:
        """Roll back the transaction explicitly.

        Returns:
            The driver's rollback result, False if the guard was not OPEN.
        """
        if self.state != TransactionState.OPEN:
            return False
        return self._finish("rollback")

    def close(self) -> None:
        """End the guard's scope, rolling back if still OPEN."""
        if self.state != TransactionState.OPEN:
            return
        if not self._finish("rollback"):
            logger.warning("Implicit rollback of abandoned transaction failed")
        else:
            logger.info("Rolled back transaction left open at end of scope")

    def _finish(self, operation: str) -> bool:
        self.state = TransactionState.DONE
        driver = self.handle.driver
        try:
            ok = driver.commit() if operation == "commit" else driver.rollback()
        finally:
            self.handle.mark_used()
            self.handle.executor.leave()

        if ok:
            logger.debug(f"Transaction {operation} succeeded")
        else:
            logger.error(f"Transaction {operation} failed: {self._describe(driver.last_error)}")
        return ok

    @staticmethod
    def _describe(error: Optional[Exception]) -> str:
        return str(error) if error is not None else "no details from driver"
