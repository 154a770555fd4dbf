"""
Application wiring.

Builds every collaborator once per process from Settings and hands them to
the components through their constructors. The connection pool and the HTTP
session are opened on entry and closed on exit.
"""

import requests

from sri_authorizer.authorizer.sri_client import SriAuthorizationClient
from sri_authorizer.authorizer.worker import AuthorizationWorker
from sri_authorizer.config.settings import Settings
from sri_authorizer.core.interfaces import describe
from sri_authorizer.dispatch.dispatcher import ChangeDispatcher
from sri_authorizer.notifications.publisher import NotificationPublisher
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.runtime.handlers import AuthorizationQueueHandler, ChangeStreamHandler
from sri_authorizer.runtime.pollers import ChangeFeedPoller, WorkQueuePoller
from sri_authorizer.storage.artifact_store import create_artifact_store
from sri_authorizer.warehouse import (
    DatabaseConnectionPool,
    PostgresChangeFeed,
    PostgresTopic,
    PostgresVoucherStore,
    PostgresWorkQueue,
    SchemaManager,
)

logger = get_logger(__name__)


class Application:
    """
    Container for the process-wide clients and components.

    Usage:
        with Application(settings) as app:
            app.change_feed_poller().run()
    """

    def __init__(self, settings: Settings):
        self.settings = settings

        self.pool = DatabaseConnectionPool(
            password=settings.db_password,
            host=settings.db_host,
            port=settings.db_port,
            database=settings.db_name,
            user=settings.db_user,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        self.session = requests.Session()

        self.store = PostgresVoucherStore(self.pool, settings.voucher_table)
        self.change_feed = PostgresChangeFeed(self.pool, settings.voucher_table)
        self.queue = PostgresWorkQueue(
            self.pool,
            settings.authorizer_queue,
            visibility_timeout=settings.queue_visibility_timeout_seconds,
            max_receive_count=settings.queue_max_receive_count,
        )
        self.topic = PostgresTopic(self.pool, settings.notification_topic)

        self.authority = SriAuthorizationClient(
            production_endpoint=settings.sri_endpoint,
            test_endpoint=settings.sri_test_endpoint,
            timeout=settings.sri_timeout_seconds,
            session=self.session,
        )
        self.artifact_store = create_artifact_store(
            settings.artifact_store_type,
            base_path=settings.artifact_store_path,
            bucket_name=settings.artifact_bucket,
            project_id=settings.gcp_project_id,
        )

        self.publisher = NotificationPublisher(self.topic)
        self.dispatcher = ChangeDispatcher(self.queue, self.publisher)
        self.worker = AuthorizationWorker(self.store, self.authority, self.artifact_store)

    def open(self) -> None:
        self.pool.open()
        logger.info(
            "Application started",
            extra={
                "voucher_table": self.settings.voucher_table,
                "queue": self.queue.queue_name,
                "topic": self.topic.topic_name,
                "authority": describe(self.authority),
                "artifact_store": describe(self.artifact_store),
            },
        )

    def close(self) -> None:
        self.session.close()
        self.pool.close()
        logger.info("Application stopped")

    def schema_manager(self) -> SchemaManager:
        return SchemaManager(self.pool, self.settings.voucher_table)

    def change_feed_poller(self, consumer: str = "change-dispatcher") -> ChangeFeedPoller:
        return ChangeFeedPoller(
            self.change_feed,
            ChangeStreamHandler(self.dispatcher),
            consumer=consumer,
            batch_size=self.settings.stream_batch_size,
            poll_interval=self.settings.poll_interval_seconds,
        )

    def work_queue_poller(self) -> WorkQueuePoller:
        return WorkQueuePoller(
            self.queue,
            AuthorizationQueueHandler(self.worker),
            batch_size=self.settings.queue_batch_size,
            poll_interval=self.settings.poll_interval_seconds,
        )

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
