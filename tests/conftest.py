"""
Pytest configuration and fixtures for sri-voucher-authorizer tests

Unit tests run against in-memory collaborators defined here; integration
tests run against PostgreSQL in a testcontainer.
"""
import os
import uuid
from typing import Generator

import pytest

from sri_authorizer.core import access_key as access_key_codec
from sri_authorizer.core.errors import RemoteAuthorityError
from sri_authorizer.core.interfaces import AuthorityClient, QueueMessage, Topic, VoucherStore, WorkQueue
from sri_authorizer.core.models import (
    AuthorizationResult,
    ChangeEvent,
    ChangeEventName,
    SriEnvironment,
    Voucher,
    VoucherIdentity,
    VoucherStatus,
    normalize_messages,
)
from sri_authorizer.core.models.voucher import utc_now
from sri_authorizer.storage.artifact_store import ArtifactStore

TEST_ACCESS_KEY = "1511202501179001234500110010020000001231234567813"
PRODUCTION_ACCESS_KEY = "1511202501179001234500120010020000001231234567813"
COMPANY_ID = "1790012345001"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )


# =======================
# IN-MEMORY COLLABORATORS
# =======================

class InMemoryVoucherStore(VoucherStore):
    """
    Voucher table kept in a dict that records a change event per write,
    like the row trigger does for the real table.
    """

    def __init__(self, table_name: str = "vouchers"):
        self.table_name = table_name
        self.rows: dict[tuple[str, str], Voucher] = {}
        self.events: list[ChangeEvent] = []
        self.calls: list[str] = []
        self.status_history: list[VoucherStatus] = []

    def _image(self, voucher: Voucher | None) -> dict | None:
        return voucher.model_dump(mode="json") if voucher is not None else None

    def _record(self, key: tuple[str, str], old: Voucher | None, new: Voucher) -> None:
        self.rows[key] = new
        sequence_number = len(self.events) + 1
        self.events.append(
            ChangeEvent(
                sequence_number=sequence_number,
                event_id=str(sequence_number),
                table_name=self.table_name,
                event_name=ChangeEventName.MODIFY if old is not None else ChangeEventName.INSERT,
                old_image=self._image(old),
                new_image=self._image(new),
            )
        )

    def get(self, company_id: str, identity: VoucherIdentity) -> Voucher | None:
        self.calls.append("get")
        return self.rows.get((company_id, identity.voucher_key))

    def update_status(
        self,
        company_id: str,
        identity: VoucherIdentity,
        status: VoucherStatus,
        messages: list[str] | None = None,
        sri_status: str | None = None,
        authorization_date: str | None = None,
    ) -> None:
        self.calls.append("update_status")
        self.status_history.append(status)
        key = (company_id, identity.voucher_key)
        old = self.rows.get(key)
        base = old or Voucher(company_id=company_id, voucher_id=identity.voucher_key, status=status)
        new = base.model_copy(
            update={
                "status": status,
                "messages": normalize_messages(messages),
                "sri_status": sri_status if sri_status is not None else base.sri_status,
                "authorization_date": authorization_date or base.authorization_date,
                "updated_at": max(base.updated_at, utc_now()),
            }
        )
        self._record(key, old, new)

    def put(self, voucher: Voucher) -> None:
        self.calls.append("put")
        key = (voucher.company_id, voucher.voucher_id)
        self._record(key, self.rows.get(key), voucher)

    def get_by_key(self, access_key: str) -> Voucher | None:
        identity = access_key_codec.decode(access_key)
        return self.rows.get((access_key_codec.company_id(access_key), identity.voucher_key))


class RecordingQueue(WorkQueue):
    """Work queue holding messages in memory."""

    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.pending: list[QueueMessage] = []
        self.deleted: list[str] = []
        self.dead_letters: list[tuple[QueueMessage, str]] = []

    @property
    def sent_bodies(self) -> list[str]:
        return [message.body for message in self.pending]

    def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        message_id = str(uuid.uuid4())
        self.pending.append(
            QueueMessage(
                message_id=message_id,
                receipt_handle=str(uuid.uuid4()),
                body=body,
                attributes=attributes or {},
                receive_count=0,
            )
        )
        return message_id

    def receive(self, max_messages: int = 1) -> list[QueueMessage]:
        received = []
        for message in self.pending[:max_messages]:
            message.receive_count += 1
            received.append(message)
        return received

    def delete(self, message: QueueMessage) -> None:
        self.pending = [m for m in self.pending if m.message_id != message.message_id]
        self.deleted.append(message.message_id)

    def dead_letter(self, message: QueueMessage, reason: str) -> None:
        self.pending = [m for m in self.pending if m.message_id != message.message_id]
        self.dead_letters.append((message, reason))


class RecordingTopic(Topic):
    """Topic recording every published message."""

    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.published: list[tuple[str, dict[str, str]]] = []

    def publish(self, body: str, attributes: dict[str, str] | None = None) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append((body, attributes or {}))
        return f"msg-{len(self.published)}"


class FakeAuthority(AuthorityClient):
    """Remote authority returning a canned answer (or raising)."""

    def __init__(self, response: dict | None = None, error: Exception | None = None):
        self.response = response if response is not None else {}
        self.error = error
        self.calls: list[tuple[str, SriEnvironment]] = []

    def authorize(self, access_key: str, environment: SriEnvironment) -> AuthorizationResult:
        self.calls.append((access_key, environment))
        if self.error is not None:
            raise self.error
        return AuthorizationResult.from_dict(self.response)


class InMemoryArtifactStore(ArtifactStore):
    """Artifact store backed by a dict."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}

    def put(self, key: str, body: str | bytes, content_type: str) -> str:
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.objects[key] = (data, content_type)
        return f"memory://{key}"

    def get(self, key: str) -> bytes | None:
        stored = self.objects.get(key)
        return stored[0] if stored else None


def make_voucher(access_key: str = TEST_ACCESS_KEY, status: VoucherStatus = VoucherStatus.SIGNED) -> Voucher:
    """Build a voucher record for an access key."""
    identity = access_key_codec.decode(access_key)
    return Voucher(
        company_id=access_key_codec.company_id(access_key),
        voucher_id=identity.voucher_key,
        access_key=access_key,
        xml="<factura/>",
        status=status,
    )


def make_modify_event(
    old_status: str | None,
    new_status: str | None,
    access_key: str | None = TEST_ACCESS_KEY,
    sequence_number: int = 1,
) -> ChangeEvent:
    """Build a MODIFY change event between two statuses."""
    old_image = {"status": old_status, "access_key": access_key}
    new_image = {"status": new_status, "access_key": access_key}
    return ChangeEvent(
        sequence_number=sequence_number,
        event_id=str(sequence_number),
        table_name="vouchers",
        event_name=ChangeEventName.MODIFY,
        old_image={k: v for k, v in old_image.items() if v is not None},
        new_image={k: v for k, v in new_image.items() if v is not None},
    )


AUTHORIZED_RESPONSE = {
    "status": "AUTORIZADO",
    "voucher": "<factura id='comprobante'>signed</factura>",
    "authorizationDate": "2025-11-15T10:00:00-05:00",
    "authorizationNumber": TEST_ACCESS_KEY,
    "environment": "PRUEBAS",
    "messages": [],
}

REJECTED_RESPONSE = {
    "status": "NO AUTORIZADO",
    "messages": "[ERROR] 43: CLAVE ACCESO REGISTRADA",
}


@pytest.fixture
def voucher_store() -> InMemoryVoucherStore:
    return InMemoryVoucherStore()


@pytest.fixture
def work_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def topic() -> RecordingTopic:
    return RecordingTopic()


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def authorized_authority() -> FakeAuthority:
    return FakeAuthority(AUTHORIZED_RESPONSE)


@pytest.fixture
def rejecting_authority() -> FakeAuthority:
    return FakeAuthority(REJECTED_RESPONSE)


@pytest.fixture
def failing_authority() -> FakeAuthority:
    return FakeAuthority(error=RemoteAuthorityError("SRI request timed out after 60.0s"))


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_authorizer",
        password="test_password",
        dbname="test_vouchers",
    ) as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture(scope="session")
def db_pool(postgres_container):
    """
    Connection pool with the full schema installed

    Yields:
        Open DatabaseConnectionPool
    """
    from sri_authorizer.warehouse import DatabaseConnectionPool, SchemaManager

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_vouchers",
        user="test_authorizer",
        password="test_password",
    )
    pool.open()
    SchemaManager(pool, "vouchers").create_schema()

    yield pool

    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> Generator:
    """
    Provide a clean database by truncating all tables before each test
    """
    with db_pool.get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "TRUNCATE TABLE vouchers, voucher_change, change_feed_checkpoint, "
                "queue_message, topic_message"
            )
        conn.commit()

    yield db_pool


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture
def test_env_file() -> str:
    """Path to the sample test.env file"""
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "test.env")
