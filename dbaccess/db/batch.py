"""Multi-row INSERT batching."""

import logging
import math
from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Optional, Union

from dbaccess.exceptions import BatchFlushFailure, StatementFailure

if TYPE_CHECKING:
    from dbaccess.db.connection import ConnectionHandle

logger = logging.getLogger(__name__)

DEFAULT_MAX_STATEMENT_SIZE = 1024 * 1024


def _byte_size(value: str) -> int:
    return len(value.encode("utf-8"))


def _is_finite(value: Union[float, Decimal]) -> bool:
    return value.is_finite() if isinstance(value, Decimal) else math.isfinite(value)


class InsertBatcher:
    """Coalesces row inserts for one INSERT template into few statements.

    Rows are value lists such as ``"(1, 'a')"``. They are buffered until the
    next row would push the statement past ``max_statement_size``; the buffer
    is then sent as one ``template + rows`` statement. A row that is larger
    than the limit on its own is still sent, as a statement of its own.

    The batcher holds no lock between calls. Each flushed statement goes
    through the handle's serialized executor.

    Callers must ``flush()`` after the last row. Rows still buffered when the
    batcher is dropped are lost.

    On backends without multi-row INSERT every row is executed immediately
    as its own statement and ``flush()`` has nothing to send.

    Example:
        >>> batcher = handle.insert_batcher("INSERT INTO scores (player, points) VALUES ")
        >>> for player, points in rows:
        ...     if not batcher.add_values(player, points):
        ...         break
        >>> batcher.flush()
    """

    def __init__(
        self,
        handle: "ConnectionHandle",
        template: Optional[str] = None,
        max_statement_size: Optional[int] = None,
        row_separator: str = ",",
    ) -> None:
        """Initialize the batcher.

        Args:
            handle: Connection the statements are sent through.
            template: INSERT prefix up to and including ``VALUES``.
            max_statement_size: Largest statement to build, in bytes.
            row_separator: Text placed between rows.
        """
        self.handle = handle
        self.template: Optional[str] = None
        self.max_statement_size = max_statement_size or DEFAULT_MAX_STATEMENT_SIZE
        self.row_separator = row_separator
        self.pending_rows: List[str] = []
        self.buffered_size = 0
        self.flushed_row_count = 0
        self.statement_count = 0
        self.last_error: Optional[BatchFlushFailure] = None
        if template is not None:
            self.set_template(template)

    def __del__(self) -> None:
        pending = getattr(self, 'pending_rows', None)
        if pending:
            logger.warning(f"Insert batcher dropped with {len(pending)} unflushed row(s)")

    @property
    def multi_row(self) -> bool:
        return self.handle.supports_multi_row_insert

    def set_template(self, prefix: str) -> None:
        """Set the INSERT prefix used for every statement.

        Raises:
            ValueError: If the prefix is empty or rows are waiting to be flushed.
        """
        if not prefix or not prefix.strip():
            raise ValueError("INSERT template cannot be empty")
        if self.pending_rows:
            raise ValueError(
                f"Cannot replace the INSERT template while {len(self.pending_rows)} "
                "row(s) are pending, flush() first"
            )
        self.template = prefix

    def statement_size(self) -> int:
        """Size in bytes of the statement the buffer would produce now."""
        return _byte_size(self.template or "") + self.buffered_size

    def add_row(self, row: str) -> bool:
        """Append one row value list.

        If the row does not fit in the current statement, the buffer is flushed
        first.

        Returns:
            False if the flush (or, without multi-row support, the insert) failed.
            The row is not buffered in that case.

        Raises:
            ValueError: If no template has been set.
        """
        if self.template is None:
            raise ValueError("set_template() must be called before adding rows")

        if not self.multi_row:
            return self._send([row])

        row_size = _byte_size(row)
        if self.pending_rows:
            projected = self.statement_size() + _byte_size(self.row_separator) + row_size
            if projected > self.max_statement_size and not self.flush():
                return False

        if self.pending_rows:
            self.buffered_size += _byte_size(self.row_separator)
        self.pending_rows.append(row)
        self.buffered_size += row_size
        return True

    def add_values(self, *values: Any) -> bool:
        """Serialize ``values`` into a row and append it."""
        return self.add_row(self.format_row(values))

    def format_row(self, values: Any) -> str:
        """Render Python values as a parenthesized SQL value list."""
        parts = []
        for value in values:
            if value is None:
                parts.append("NULL")
            elif isinstance(value, bool):
                parts.append("1" if value else "0")
            elif isinstance(value, int):
                parts.append(str(value))
            elif isinstance(value, (float, Decimal)):
                # SQL has no literal for NaN or infinity
                parts.append(str(value) if _is_finite(value) else "NULL")
            elif isinstance(value, (bytes, bytearray, memoryview)):
                parts.append(self.handle.escape_binary(bytes(value)))
            else:
                parts.append(self.handle.escape_string(str(value)))
        return "(" + ", ".join(parts) + ")"

    def flush(self) -> bool:
        """Send the buffered rows as one statement.

        Returns:
            True if the buffer is empty afterwards. On failure the rows stay
            buffered so the flush can be retried.
        """
        if not self.pending_rows:
            return True
        if not self._send(self.pending_rows):
            return False
        self.pending_rows = []
        self.buffered_size = 0
        return True

    def _send(self, rows: List[str]) -> bool:
        statement = self.template + self.row_separator.join(rows)
        if self.handle.execute(statement):
            self.flushed_row_count += len(rows)
            self.statement_count += 1
            logger.debug(f"Inserted {len(rows)} row(s) in one statement ({_byte_size(statement)} bytes)")
            return True

        cause = self.handle.last_error
        self.last_error = BatchFlushFailure(
            f"Failed to insert {len(rows)} row(s)",
            rows=len(rows),
            cause=cause if isinstance(cause, StatementFailure) else None,
        )
        logger.error(f"{self.last_error.message}: {cause}")
        return False
