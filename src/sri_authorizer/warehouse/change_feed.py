"""
Checkpointed reader over the voucher change log.

The row-level trigger installed by SchemaManager appends one entry per
committed write. The trigger serializes writers on an advisory lock held
until commit, so sequence numbers become visible in increasing order and a
checkpoint never skips a late commit. Rolled-back writes leave harmless
holes in the numbering.
"""

from psycopg import sql

from sri_authorizer.core.models import ChangeEvent
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.utils.validation import sanitize_sql_identifier, validate_limit

from .connection import DatabaseConnectionPool
from .schema_mgmt import CHANGE_TABLE, CHECKPOINT_TABLE

logger = get_logger(__name__)

READ_BATCH = """
    SELECT sequence_number, table_name, event_name, old_image, new_image, created_at
    FROM {change_table}
    WHERE table_name = %(table_name)s
      AND sequence_number > %(after)s
    ORDER BY sequence_number
    LIMIT %(limit)s
"""

READ_CHECKPOINT = """
    SELECT last_sequence_number
    FROM {checkpoint_table}
    WHERE consumer_name = %s AND table_name = %s
"""

# GREATEST keeps the checkpoint from moving backwards under concurrent commits
COMMIT_CHECKPOINT = """
    INSERT INTO {checkpoint_table} AS c (consumer_name, table_name, last_sequence_number, updated_at)
    VALUES (%s, %s, %s, NOW())
    ON CONFLICT (consumer_name, table_name) DO UPDATE SET
        last_sequence_number = GREATEST(c.last_sequence_number, EXCLUDED.last_sequence_number),
        updated_at = NOW()
"""


class PostgresChangeFeed:
    """
    Change feed of one voucher table, consumed by named consumers.
    """

    def __init__(self, pool: DatabaseConnectionPool, table_name: str):
        """
        Initialize the change feed.

        Args:
            pool: Database connection pool
            table_name: Voucher table whose changes are read
        """
        self.pool = pool
        self.table_name = sanitize_sql_identifier(table_name, "voucher_table")

    def checkpoint(self, consumer: str) -> int:
        """Return the last committed sequence number of a consumer (0 if none)."""
        rows = self.pool.execute_query(
            sql.SQL(READ_CHECKPOINT).format(checkpoint_table=sql.Identifier(CHECKPOINT_TABLE)),
            (consumer, self.table_name),
        )
        return rows[0]["last_sequence_number"] if rows else 0

    def read_batch(self, consumer: str, limit: int = 100) -> list[ChangeEvent]:
        """
        Read the next events after the consumer's checkpoint.

        Args:
            consumer: Consumer name
            limit: Maximum events to return

        Returns:
            Change events in sequence order
        """
        limit = validate_limit(limit, "limit")
        after = self.checkpoint(consumer)

        rows = self.pool.execute_query(
            sql.SQL(READ_BATCH).format(change_table=sql.Identifier(CHANGE_TABLE)),
            {"table_name": self.table_name, "after": after, "limit": limit},
        )

        return [
            ChangeEvent(
                sequence_number=row["sequence_number"],
                event_id=str(row["sequence_number"]),
                table_name=row["table_name"],
                event_name=row["event_name"],
                old_image=row["old_image"],
                new_image=row["new_image"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def commit(self, consumer: str, sequence_number: int) -> None:
        """
        Mark every event up to and including sequence_number as consumed.

        Args:
            consumer: Consumer name
            sequence_number: Last fully processed sequence number
        """
        self.pool.execute_command(
            sql.SQL(COMMIT_CHECKPOINT).format(checkpoint_table=sql.Identifier(CHECKPOINT_TABLE)),
            (consumer, self.table_name, sequence_number),
        )
        logger.debug(
            "Change feed checkpoint committed",
            extra={"consumer": consumer, "table_name": self.table_name, "sequence_number": sequence_number},
        )
