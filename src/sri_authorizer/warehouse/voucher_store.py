"""
PostgreSQL-backed voucher table.

Every write goes through INSERT ... ON CONFLICT so status updates are
idempotent and the row-level change trigger sees exactly one MODIFY per
write.
"""

from psycopg import sql
from psycopg.types.json import Jsonb

from sri_authorizer.core.interfaces import VoucherStore
from sri_authorizer.core.models import Voucher, VoucherIdentity, VoucherStatus, normalize_messages
from sri_authorizer.core.models.voucher import utc_now
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.utils.validation import sanitize_sql_identifier

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

SELECT_VOUCHER = """
    SELECT company_id, voucher_id, access_key, xml, status, sri_status,
           sri_error_identifier, messages, authorization_date, created_at, updated_at
    FROM {table}
    WHERE company_id = %s AND voucher_id = %s
"""

# updated_at never moves backwards, even when two writers race
UPSERT_STATUS = """
    INSERT INTO {table} AS v (
        company_id, voucher_id, status, messages, sri_status, authorization_date, updated_at
    )
    VALUES (%(company_id)s, %(voucher_id)s, %(status)s, %(messages)s,
            %(sri_status)s, %(authorization_date)s, %(updated_at)s)
    ON CONFLICT (company_id, voucher_id) DO UPDATE SET
        status = EXCLUDED.status,
        messages = EXCLUDED.messages,
        sri_status = COALESCE(EXCLUDED.sri_status, v.sri_status),
        authorization_date = COALESCE(EXCLUDED.authorization_date, v.authorization_date),
        updated_at = GREATEST(v.updated_at, EXCLUDED.updated_at)
"""

UPSERT_VOUCHER = """
    INSERT INTO {table} AS v (
        company_id, voucher_id, access_key, xml, status, sri_status,
        sri_error_identifier, messages, authorization_date, created_at, updated_at
    )
    VALUES (%(company_id)s, %(voucher_id)s, %(access_key)s, %(xml)s, %(status)s,
            %(sri_status)s, %(sri_error_identifier)s, %(messages)s,
            %(authorization_date)s, %(created_at)s, %(updated_at)s)
    ON CONFLICT (company_id, voucher_id) DO UPDATE SET
        access_key = EXCLUDED.access_key,
        xml = EXCLUDED.xml,
        status = EXCLUDED.status,
        sri_status = EXCLUDED.sri_status,
        sri_error_identifier = EXCLUDED.sri_error_identifier,
        messages = EXCLUDED.messages,
        authorization_date = EXCLUDED.authorization_date,
        updated_at = GREATEST(v.updated_at, EXCLUDED.updated_at)
"""


class PostgresVoucherStore(VoucherStore):
    """
    Voucher table keyed by (company_id, voucher_id).
    """

    def __init__(self, pool: DatabaseConnectionPool, table_name: str):
        """
        Initialize the store.

        Args:
            pool: Database connection pool
            table_name: Voucher table name (from configuration)
        """
        self.pool = pool
        self.table_name = sanitize_sql_identifier(table_name, "voucher_table")
        self._table = sql.Identifier(self.table_name)

    def get(self, company_id: str, identity: VoucherIdentity) -> Voucher | None:
        rows = self.pool.execute_query(
            sql.SQL(SELECT_VOUCHER).format(table=self._table),
            (company_id, identity.voucher_key),
        )
        if not rows:
            return None
        return Voucher(**rows[0])

    def update_status(
        self,
        company_id: str,
        identity: VoucherIdentity,
        status: VoucherStatus,
        messages: list[str] | None = None,
        sri_status: str | None = None,
        authorization_date: str | None = None,
    ) -> None:
        self.pool.execute_command(
            sql.SQL(UPSERT_STATUS).format(table=self._table),
            {
                "company_id": company_id,
                "voucher_id": identity.voucher_key,
                "status": status.value,
                "messages": Jsonb(normalize_messages(messages)),
                "sri_status": sri_status,
                "authorization_date": authorization_date,
                "updated_at": utc_now(),
            },
        )
        logger.debug(
            "Voucher status updated",
            extra={"company_id": company_id, "voucher_id": identity.voucher_key, "status": status.value},
        )

    def put(self, voucher: Voucher) -> None:
        self.pool.execute_command(
            sql.SQL(UPSERT_VOUCHER).format(table=self._table),
            {
                "company_id": voucher.company_id,
                "voucher_id": voucher.voucher_id,
                "access_key": voucher.access_key,
                "xml": voucher.xml,
                "status": voucher.status.value,
                "sri_status": voucher.sri_status,
                "sri_error_identifier": voucher.sri_error_identifier,
                "messages": Jsonb(voucher.messages),
                "authorization_date": voucher.authorization_date,
                "created_at": voucher.created_at,
                "updated_at": voucher.updated_at,
            },
        )
