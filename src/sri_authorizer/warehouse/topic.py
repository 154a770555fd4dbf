"""
PostgreSQL-backed notification topic.

Each published message is stored in the topic table and announced with
``pg_notify(<topic>, <message_id>)`` in the same transaction, so LISTEN
subscribers only ever hear about committed messages.
"""

import uuid

from psycopg import sql
from psycopg.types.json import Jsonb

from sri_authorizer.core.interfaces import Topic
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.utils.validation import validate_channel_name, validate_limit

from .connection import DatabaseConnectionPool
from .schema_mgmt import TOPIC_TABLE

logger = get_logger(__name__)

INSERT_MESSAGE = """
    INSERT INTO {topic_table} (message_id, topic_name, body, attributes)
    VALUES (%s, %s, %s, %s)
"""

NOTIFY = "SELECT pg_notify(%s, %s)"

LIST_MESSAGES = """
    SELECT message_id, body, attributes, published_at
    FROM {topic_table}
    WHERE topic_name = %s
    ORDER BY published_at DESC
    LIMIT %s
"""


class PostgresTopic(Topic):
    """
    Named topic stored in the shared topic table.
    """

    def __init__(self, pool: DatabaseConnectionPool, topic_name: str):
        """
        Initialize the topic.

        Args:
            pool: Database connection pool
            topic_name: Topic name, also used as the NOTIFY channel
        """
        self.pool = pool
        self.topic_name = validate_channel_name(topic_name, "topic_name")
        self._table = sql.Identifier(TOPIC_TABLE)

    def publish(self, body: str, attributes: dict[str, str] | None = None) -> str:
        message_id = str(uuid.uuid4())

        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL(INSERT_MESSAGE).format(topic_table=self._table),
                    (message_id, self.topic_name, body, Jsonb(attributes or {})),
                )
                cur.execute(NOTIFY, (self.topic_name, message_id))
            conn.commit()

        logger.debug("Message published", extra={"topic": self.topic_name, "message_id": message_id})
        return message_id

    def list_messages(self, limit: int = 100) -> list[dict]:
        """
        List the most recent messages of the topic.

        Args:
            limit: Maximum messages to return

        Returns:
            Messages, newest first
        """
        limit = validate_limit(limit, "limit")
        rows = self.pool.execute_query(
            sql.SQL(LIST_MESSAGES).format(topic_table=self._table),
            (self.topic_name, limit),
        )
        return [{**row, "message_id": str(row["message_id"])} for row in rows]
