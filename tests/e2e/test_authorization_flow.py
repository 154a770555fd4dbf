"""
End-to-end tests for the authorization pipeline.

Tests the complete flow: voucher write → change feed → dispatcher →
work queue → worker → remote authority → status update → notification
"""

import json

import pytest

from conftest import (
    AUTHORIZED_RESPONSE,
    COMPANY_ID,
    REJECTED_RESPONSE,
    TEST_ACCESS_KEY,
    FakeAuthority,
    InMemoryArtifactStore,
    InMemoryVoucherStore,
    RecordingQueue,
    RecordingTopic,
    make_voucher,
)
from sri_authorizer.authorizer.worker import AuthorizationWorker
from sri_authorizer.core import access_key as access_key_codec
from sri_authorizer.core.models import VoucherStatus
from sri_authorizer.dispatch.dispatcher import ChangeDispatcher
from sri_authorizer.notifications.publisher import NotificationPublisher
from sri_authorizer.runtime import (
    AuthorizationQueueHandler,
    ChangeFeedPoller,
    ChangeStreamHandler,
    WorkQueuePoller,
)

IDENTITY = access_key_codec.decode(TEST_ACCESS_KEY)


class StoreChangeFeed:
    """Change feed reading the events recorded by the in-memory store."""

    def __init__(self, store: InMemoryVoucherStore):
        self.store = store
        self.checkpoints: dict[str, int] = {}

    def read_batch(self, consumer, limit=100):
        after = self.checkpoints.get(consumer, 0)
        return [event for event in self.store.events if event.sequence_number > after][:limit]

    def commit(self, consumer, sequence_number):
        self.checkpoints[consumer] = max(self.checkpoints.get(consumer, 0), sequence_number)


class Pipeline:
    """Wires the in-memory collaborators the way Application wires the real ones."""

    def __init__(self, authority: FakeAuthority):
        self.store = InMemoryVoucherStore()
        self.queue = RecordingQueue()
        self.topic = RecordingTopic()
        self.artifacts = InMemoryArtifactStore()
        self.feed = StoreChangeFeed(self.store)
        self.authority = authority

        dispatcher = ChangeDispatcher(self.queue, NotificationPublisher(self.topic))
        worker = AuthorizationWorker(self.store, authority, self.artifacts)
        self.dispatcher_poller = ChangeFeedPoller(self.feed, ChangeStreamHandler(dispatcher), consumer="e2e")
        self.worker_poller = WorkQueuePoller(self.queue, AuthorizationQueueHandler(worker))

    def dispatch(self):
        return self.dispatcher_poller.poll_once()

    def work(self):
        return self.worker_poller.poll_once()


@pytest.mark.e2e
class TestAuthorizationFlow:
    """Voucher lifecycle through both pollers"""

    def test_received_voucher_is_authorized_and_notified(self):
        pipeline = Pipeline(FakeAuthority(AUTHORIZED_RESPONSE))
        pipeline.store.put(make_voucher(status=VoucherStatus.SIGNED))
        pipeline.store.update_status(COMPANY_ID, IDENTITY, VoucherStatus.RECEIVED)

        # INSERT and SIGNED→RECEIVED: one authorization request
        pipeline.dispatch()
        assert len(pipeline.queue.pending) == 1
        assert json.loads(pipeline.queue.pending[0].body)["accessKey"] == TEST_ACCESS_KEY

        result = pipeline.work()
        assert result.batch_item_failures == []
        voucher = pipeline.store.get(COMPANY_ID, IDENTITY)
        assert voucher.status == VoucherStatus.AUTHORIZED
        assert voucher.authorization_date == AUTHORIZED_RESPONSE["authorizationDate"]
        assert pipeline.artifacts.get(f"{COMPANY_ID}/authorized/{TEST_ACCESS_KEY}.xml") is not None

        # RECEIVED→PROCESSING re-requests authorization, PROCESSING→AUTHORIZED notifies
        pipeline.dispatch()
        assert len(pipeline.topic.published) == 1
        body, attributes = pipeline.topic.published[0]
        assert json.loads(body)["status"] == "AUTHORIZED"
        assert json.loads(body)["accessKey"] == TEST_ACCESS_KEY
        assert attributes["status"] == "AUTHORIZED"

        # The repeated request finds the voucher finished and is acknowledged
        pipeline.work()
        pipeline.dispatch()
        assert pipeline.queue.pending == []
        assert len(pipeline.authority.calls) == 1
        assert len(pipeline.topic.published) == 1

    @pytest.mark.parametrize("response", [AUTHORIZED_RESPONSE, REJECTED_RESPONSE])
    def test_pipeline_settles(self, response):
        """Test repeated polling leaves a finished voucher alone"""
        pipeline = Pipeline(FakeAuthority(response))
        pipeline.store.put(make_voucher(status=VoucherStatus.SIGNED))
        pipeline.store.update_status(COMPANY_ID, IDENTITY, VoucherStatus.RECEIVED)

        for _ in range(5):
            pipeline.dispatch()
            pipeline.work()

        assert len(pipeline.authority.calls) == 1
        assert pipeline.queue.pending == []
        assert len(pipeline.topic.published) == (1 if response is AUTHORIZED_RESPONSE else 0)
        assert pipeline.store.status_history == [
            VoucherStatus.RECEIVED,
            VoucherStatus.PROCESSING,
            VoucherStatus.AUTHORIZED if response is AUTHORIZED_RESPONSE else VoucherStatus.NOT_AUTHORIZED,
        ]

    def test_rejected_voucher_is_not_notified(self):
        pipeline = Pipeline(FakeAuthority(REJECTED_RESPONSE))
        pipeline.store.put(make_voucher(status=VoucherStatus.SIGNED))
        pipeline.store.update_status(COMPANY_ID, IDENTITY, VoucherStatus.RECEIVED)

        pipeline.dispatch()
        pipeline.work()
        pipeline.dispatch()

        voucher = pipeline.store.get(COMPANY_ID, IDENTITY)
        assert voucher.status == VoucherStatus.NOT_AUTHORIZED
        assert voucher.messages == ["[ERROR] 43: CLAVE ACCESO REGISTRADA"]
        assert pipeline.topic.published == []
        assert pipeline.artifacts.objects == {}

    def test_remote_failure_is_retried(self, failing_authority):
        pipeline = Pipeline(failing_authority)
        pipeline.store.put(make_voucher(status=VoucherStatus.SIGNED))
        pipeline.store.update_status(COMPANY_ID, IDENTITY, VoucherStatus.RECEIVED)
        pipeline.dispatch()

        result = pipeline.work()

        assert result.failed_identifiers == [pipeline.queue.pending[0].message_id]
        assert pipeline.queue.dead_letters == []
        assert pipeline.store.get(COMPANY_ID, IDENTITY).status == VoucherStatus.PROCESSING

        # The authority recovers and the redelivered message succeeds
        pipeline.authority.error = None
        pipeline.authority.response = AUTHORIZED_RESPONSE
        pipeline.work()

        assert pipeline.store.get(COMPANY_ID, IDENTITY).status == VoucherStatus.AUTHORIZED
        assert len(pipeline.authority.calls) == 2

    def test_missing_voucher_is_dead_lettered(self, authorized_authority):
        pipeline = Pipeline(authorized_authority)
        pipeline.queue.send(json.dumps({"accessKey": TEST_ACCESS_KEY}))

        pipeline.work()

        assert pipeline.queue.pending == []
        (message, reason), = pipeline.queue.dead_letters
        assert reason.startswith("VoucherNotFoundError")
        assert authorized_authority.calls == []

    def test_publish_failure_rereads_change_event(self):
        pipeline = Pipeline(FakeAuthority(AUTHORIZED_RESPONSE))
        pipeline.store.put(make_voucher(status=VoucherStatus.SIGNED))
        pipeline.store.update_status(COMPANY_ID, IDENTITY, VoucherStatus.RECEIVED)
        pipeline.queue.fail_with = ConnectionError("queue unavailable")

        result = pipeline.dispatch()

        assert result.failed_identifiers == ["2"]
        assert pipeline.feed.checkpoints["e2e"] == 1

        pipeline.queue.fail_with = None
        pipeline.dispatch()

        assert pipeline.feed.checkpoints["e2e"] == 2
        assert len(pipeline.queue.pending) == 1


@pytest.mark.e2e
@pytest.mark.integration
class TestPostgresAuthorizationFlow:
    """Same flow against PostgreSQL (requires Docker)"""

    def test_received_voucher_is_authorized_and_notified(self, clean_db):
        from sri_authorizer.warehouse import (
            PostgresChangeFeed,
            PostgresTopic,
            PostgresVoucherStore,
            PostgresWorkQueue,
        )

        store = PostgresVoucherStore(clean_db, "vouchers")
        queue = PostgresWorkQueue(clean_db, "sri-authorizer")
        topic = PostgresTopic(clean_db, "voucher-status")
        feed = PostgresChangeFeed(clean_db, "vouchers")
        dispatcher = ChangeDispatcher(queue, NotificationPublisher(topic))
        authority = FakeAuthority(AUTHORIZED_RESPONSE)
        worker = AuthorizationWorker(store, authority)
        dispatcher_poller = ChangeFeedPoller(feed, ChangeStreamHandler(dispatcher), consumer="e2e")
        worker_poller = WorkQueuePoller(queue, AuthorizationQueueHandler(worker))

        store.put(make_voucher(status=VoucherStatus.SIGNED))
        store.update_status(COMPANY_ID, IDENTITY, VoucherStatus.RECEIVED)

        dispatcher_poller.poll_once()
        worker_poller.poll_once()
        dispatcher_poller.poll_once()

        assert store.get(COMPANY_ID, IDENTITY).status == VoucherStatus.AUTHORIZED
        notifications = topic.list_messages()
        assert len(notifications) == 1
        assert notifications[0]["attributes"]["status"] == "AUTHORIZED"

        # The request queued by the PROCESSING marker is acknowledged without effect
        worker_poller.poll_once()
        dispatcher_poller.poll_once()
        assert queue.receive(10) == []
        assert len(authority.calls) == 1
        assert len(topic.list_messages()) == 1
