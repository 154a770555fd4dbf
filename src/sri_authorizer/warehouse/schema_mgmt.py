"""
Database schema management.

Installs the voucher table, its change-capture trigger, the change feed
log and checkpoints, and the tables backing the work queue and the
notification topic. All statements are idempotent.
"""

from psycopg import sql

from sri_authorizer.observability.logger import get_logger
from sri_authorizer.utils.validation import sanitize_sql_identifier

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

CHANGE_TABLE = "voucher_change"
CHECKPOINT_TABLE = "change_feed_checkpoint"
QUEUE_TABLE = "queue_message"
TOPIC_TABLE = "topic_message"

VOUCHER_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS {voucher_table} (
        company_id TEXT NOT NULL,
        voucher_id TEXT NOT NULL,
        access_key TEXT,
        xml TEXT,
        status TEXT NOT NULL,
        sri_status TEXT,
        sri_error_identifier TEXT,
        messages JSONB NOT NULL DEFAULT '[]'::jsonb,
        authorization_date TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (company_id, voucher_id)
    )
"""

CHANGE_TABLE_DDL = f"""
    CREATE TABLE IF NOT EXISTS {CHANGE_TABLE} (
        sequence_number BIGSERIAL PRIMARY KEY,
        table_name TEXT NOT NULL,
        event_name TEXT NOT NULL CHECK (event_name IN ('INSERT', 'MODIFY', 'REMOVE')),
        company_id TEXT NOT NULL,
        voucher_id TEXT NOT NULL,
        old_image JSONB,
        new_image JSONB,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""

CHECKPOINT_TABLE_DDL = f"""
    CREATE TABLE IF NOT EXISTS {CHECKPOINT_TABLE} (
        consumer_name TEXT NOT NULL,
        table_name TEXT NOT NULL,
        last_sequence_number BIGINT NOT NULL DEFAULT 0,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (consumer_name, table_name)
    )
"""

CHANGE_LOCK_KEY = 7421001

# Writers hold the change-log lock until they commit, so sequence numbers are
# taken in commit order and a committed entry never has an uncommitted
# predecessor
CAPTURE_FUNCTION_DDL = f"""
    CREATE OR REPLACE FUNCTION capture_voucher_change() RETURNS trigger AS $$
    BEGIN
        PERFORM pg_advisory_xact_lock({CHANGE_LOCK_KEY});
        IF TG_OP = 'INSERT' THEN
            INSERT INTO {CHANGE_TABLE} (table_name, event_name, company_id, voucher_id, old_image, new_image)
            VALUES (TG_TABLE_NAME, 'INSERT', NEW.company_id, NEW.voucher_id, NULL, to_jsonb(NEW));
            RETURN NEW;
        ELSIF TG_OP = 'UPDATE' THEN
            INSERT INTO {CHANGE_TABLE} (table_name, event_name, company_id, voucher_id, old_image, new_image)
            VALUES (TG_TABLE_NAME, 'MODIFY', NEW.company_id, NEW.voucher_id, to_jsonb(OLD), to_jsonb(NEW));
            RETURN NEW;
        ELSE
            INSERT INTO {CHANGE_TABLE} (table_name, event_name, company_id, voucher_id, old_image, new_image)
            VALUES (TG_TABLE_NAME, 'REMOVE', OLD.company_id, OLD.voucher_id, to_jsonb(OLD), NULL);
            RETURN OLD;
        END IF;
    END;
    $$ LANGUAGE plpgsql
"""

DROP_TRIGGER_DDL = "DROP TRIGGER IF EXISTS {trigger} ON {voucher_table}"

CREATE_TRIGGER_DDL = """
    CREATE TRIGGER {trigger}
    AFTER INSERT OR UPDATE OR DELETE ON {voucher_table}
    FOR EACH ROW EXECUTE FUNCTION capture_voucher_change()
"""

QUEUE_TABLE_DDL = f"""
    CREATE TABLE IF NOT EXISTS {QUEUE_TABLE} (
        message_id UUID PRIMARY KEY,
        queue_name TEXT NOT NULL,
        body TEXT NOT NULL,
        attributes JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        receive_count INTEGER NOT NULL DEFAULT 0,
        receipt_handle UUID,
        visible_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        dead_letter_reason TEXT
    )
"""

QUEUE_INDEX_DDL = f"""
    CREATE INDEX IF NOT EXISTS {QUEUE_TABLE}_visible_idx
    ON {QUEUE_TABLE} (queue_name, visible_at)
"""

TOPIC_TABLE_DDL = f"""
    CREATE TABLE IF NOT EXISTS {TOPIC_TABLE} (
        message_id UUID PRIMARY KEY,
        topic_name TEXT NOT NULL,
        body TEXT NOT NULL,
        attributes JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        published_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""


class SchemaManager:
    """
    Creates the tables the pipeline needs.
    """

    def __init__(self, pool: DatabaseConnectionPool, voucher_table: str):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
            voucher_table: Name of the voucher table (validated identifier)
        """
        self.pool = pool
        self.voucher_table = sanitize_sql_identifier(voucher_table, "voucher_table")

    def statements(self) -> list[sql.Composable]:
        """Return the DDL statements in execution order."""
        voucher_table = sql.Identifier(self.voucher_table)
        trigger = sql.Identifier(f"{self.voucher_table}_change_trigger")

        return [
            sql.SQL(VOUCHER_TABLE_DDL).format(voucher_table=voucher_table),
            sql.SQL(CHANGE_TABLE_DDL),
            sql.SQL(CHECKPOINT_TABLE_DDL),
            sql.SQL(CAPTURE_FUNCTION_DDL),
            sql.SQL(DROP_TRIGGER_DDL).format(trigger=trigger, voucher_table=voucher_table),
            sql.SQL(CREATE_TRIGGER_DDL).format(trigger=trigger, voucher_table=voucher_table),
            sql.SQL(QUEUE_TABLE_DDL),
            sql.SQL(QUEUE_INDEX_DDL),
            sql.SQL(TOPIC_TABLE_DDL),
        ]

    def create_schema(self) -> None:
        """Create (or update) all tables, the change function and the trigger."""
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                for statement in self.statements():
                    cur.execute(statement)
            conn.commit()

        logger.info(
            "Schema ready",
            extra={"voucher_table": self.voucher_table, "change_table": CHANGE_TABLE},
        )
