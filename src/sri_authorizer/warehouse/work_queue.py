"""
PostgreSQL-backed work queue.

At-least-once delivery with a visibility timeout: a received message stays
invisible for ``visibility_timeout`` seconds and reappears unless it is
deleted. Every delivery gets a fresh receipt handle; only the holder of the
latest handle can delete or dead-letter it. A message that was received
``max_receive_count`` times without being deleted is moved to the
dead-letter queue (``<queue>-dlq``) instead of being delivered again.
"""

import uuid

from psycopg import sql
from psycopg.types.json import Jsonb

from sri_authorizer.core.interfaces import QueueMessage, WorkQueue
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.utils.validation import validate_channel_name, validate_limit

from .connection import DatabaseConnectionPool
from .schema_mgmt import QUEUE_TABLE

logger = get_logger(__name__)

DEAD_LETTER_SUFFIX = "-dlq"
MAX_RECEIVE_REASON = "max receive count exceeded"

INSERT_MESSAGE = """
    INSERT INTO {queue_table} (message_id, queue_name, body, attributes)
    VALUES (%s, %s, %s, %s)
"""

# Expired deliveries that already used up their receives go to the DLQ
MOVE_EXHAUSTED = """
    UPDATE {queue_table}
    SET queue_name = %(dead_letter_queue)s,
        dead_letter_reason = %(reason)s,
        receipt_handle = NULL,
        visible_at = NOW()
    WHERE queue_name = %(queue_name)s
      AND visible_at <= NOW()
      AND receive_count >= %(max_receive_count)s
"""

RECEIVE_MESSAGES = """
    WITH candidates AS (
        SELECT message_id
        FROM {queue_table}
        WHERE queue_name = %(queue_name)s AND visible_at <= NOW()
        ORDER BY sent_at
        LIMIT %(limit)s
        FOR UPDATE SKIP LOCKED
    )
    UPDATE {queue_table} AS q
    SET receive_count = q.receive_count + 1,
        receipt_handle = gen_random_uuid(),
        visible_at = NOW() + make_interval(secs => %(visibility_timeout)s)
    FROM candidates
    WHERE q.message_id = candidates.message_id
    RETURNING q.message_id, q.receipt_handle, q.body, q.attributes, q.receive_count, q.sent_at
"""

DELETE_MESSAGE = """
    DELETE FROM {queue_table}
    WHERE message_id = %s AND receipt_handle = %s
"""

DEAD_LETTER_MESSAGE = """
    UPDATE {queue_table}
    SET queue_name = %s,
        dead_letter_reason = %s,
        receipt_handle = NULL,
        visible_at = NOW()
    WHERE message_id = %s AND receipt_handle = %s
"""

LIST_DEAD_LETTERS = """
    SELECT message_id, body, attributes, receive_count, sent_at, dead_letter_reason
    FROM {queue_table}
    WHERE queue_name = %s
    ORDER BY sent_at
    LIMIT %s
"""

REDRIVE_MESSAGES = """
    WITH candidates AS (
        SELECT message_id
        FROM {queue_table}
        WHERE queue_name = %(dead_letter_queue)s
        ORDER BY sent_at
        LIMIT %(limit)s
        FOR UPDATE SKIP LOCKED
    )
    UPDATE {queue_table} AS q
    SET queue_name = %(queue_name)s,
        receive_count = 0,
        dead_letter_reason = NULL,
        receipt_handle = NULL,
        visible_at = NOW()
    FROM candidates
    WHERE q.message_id = candidates.message_id
"""


class PostgresWorkQueue(WorkQueue):
    """
    Named queue stored in the shared queue table.
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        queue_name: str,
        visibility_timeout: float = 300.0,
        max_receive_count: int = 3,
    ):
        """
        Initialize the queue.

        Args:
            pool: Database connection pool
            queue_name: Queue name (its DLQ is ``<queue_name>-dlq``)
            visibility_timeout: Seconds a received message stays invisible
            max_receive_count: Receives allowed before dead-lettering
        """
        self.pool = pool
        self.queue_name = validate_channel_name(queue_name, "queue_name")
        self.dead_letter_queue = f"{self.queue_name}{DEAD_LETTER_SUFFIX}"
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count
        self._table = sql.Identifier(QUEUE_TABLE)

    def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        message_id = str(uuid.uuid4())
        self.pool.execute_command(
            sql.SQL(INSERT_MESSAGE).format(queue_table=self._table),
            (message_id, self.queue_name, body, Jsonb(attributes or {})),
        )
        logger.debug("Message sent", extra={"queue": self.queue_name, "message_id": message_id})
        return message_id

    def receive(self, max_messages: int = 1) -> list[QueueMessage]:
        limit = validate_limit(max_messages, "max_messages")

        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL(MOVE_EXHAUSTED).format(queue_table=self._table),
                    {
                        "dead_letter_queue": self.dead_letter_queue,
                        "reason": MAX_RECEIVE_REASON,
                        "queue_name": self.queue_name,
                        "max_receive_count": self.max_receive_count,
                    },
                )
                exhausted = cur.rowcount

                cur.execute(
                    sql.SQL(RECEIVE_MESSAGES).format(queue_table=self._table),
                    {
                        "queue_name": self.queue_name,
                        "limit": limit,
                        "visibility_timeout": self.visibility_timeout,
                    },
                )
                rows = cur.fetchall()
            conn.commit()

        if exhausted > 0:
            metrics.increment_counter(
                metrics.dead_lettered_messages_total,
                exhausted,
                queue=self.queue_name,
                reason="max_receive_count",
            )
            logger.warning(
                f"Moved {exhausted} message(s) to dead-letter queue",
                extra={"queue": self.queue_name, "dead_letter_queue": self.dead_letter_queue},
            )

        return [
            QueueMessage(
                message_id=str(row["message_id"]),
                receipt_handle=str(row["receipt_handle"]),
                body=row["body"],
                attributes=row["attributes"] or {},
                receive_count=row["receive_count"],
                sent_at=row["sent_at"],
            )
            for row in sorted(rows, key=lambda row: row["sent_at"])
        ]

    def delete(self, message: QueueMessage) -> None:
        deleted = self.pool.execute_command(
            sql.SQL(DELETE_MESSAGE).format(queue_table=self._table),
            (message.message_id, message.receipt_handle),
        )
        if deleted == 0:
            # Visibility expired and someone else received it meanwhile
            logger.warning(
                "Stale receipt handle, message not deleted",
                extra={"queue": self.queue_name, "message_id": message.message_id},
            )

    def dead_letter(self, message: QueueMessage, reason: str) -> None:
        moved = self.pool.execute_command(
            sql.SQL(DEAD_LETTER_MESSAGE).format(queue_table=self._table),
            (self.dead_letter_queue, reason, message.message_id, message.receipt_handle),
        )
        if moved == 0:
            logger.warning(
                "Stale receipt handle, message not dead-lettered",
                extra={"queue": self.queue_name, "message_id": message.message_id},
            )
            return

        metrics.increment_counter(
            metrics.dead_lettered_messages_total, queue=self.queue_name, reason="non_retriable"
        )
        logger.warning(
            "Message dead-lettered",
            extra={"queue": self.queue_name, "message_id": message.message_id, "reason": reason},
        )

    def list_dead_letters(self, limit: int = 100) -> list[dict]:
        """
        List messages parked in the dead-letter queue.

        Args:
            limit: Maximum messages to return

        Returns:
            Dead-lettered messages with their reason, oldest first
        """
        limit = validate_limit(limit, "limit")
        rows = self.pool.execute_query(
            sql.SQL(LIST_DEAD_LETTERS).format(queue_table=self._table),
            (self.dead_letter_queue, limit),
        )
        return [{**row, "message_id": str(row["message_id"])} for row in rows]

    def redrive(self, limit: int = 100) -> int:
        """
        Move dead-lettered messages back to the queue with a fresh receive count.

        Args:
            limit: Maximum messages to move

        Returns:
            Number of messages moved
        """
        limit = validate_limit(limit, "limit")
        moved = self.pool.execute_command(
            sql.SQL(REDRIVE_MESSAGES).format(queue_table=self._table),
            {"dead_letter_queue": self.dead_letter_queue, "queue_name": self.queue_name, "limit": limit},
        )
        logger.info(
            f"Redrove {moved} message(s)",
            extra={"queue": self.queue_name, "dead_letter_queue": self.dead_letter_queue},
        )
        return moved
