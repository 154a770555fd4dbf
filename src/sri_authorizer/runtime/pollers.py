"""
Long-running pollers feeding batches to the handlers.

ChangeFeedPoller: reads the voucher change feed after its checkpoint and
advances the checkpoint only past events that were fully handled, so the
first failed event and everything after it is read again.

WorkQueuePoller: receives authorization messages, deletes the handled ones,
dead-letters non-retriable failures right away and leaves retriable ones to
reappear after the visibility timeout.
"""

import threading
from abc import ABC, abstractmethod

from sri_authorizer.core.interfaces import WorkQueue
from sri_authorizer.core.models import BatchResult
from sri_authorizer.observability.logger import get_logger
from sri_authorizer.warehouse.change_feed import PostgresChangeFeed

from .handlers import AuthorizationQueueHandler, ChangeStreamHandler

logger = get_logger(__name__)

DEFAULT_CONSUMER = "change-dispatcher"


class Poller(ABC):
    """
    Base polling loop with cooperative shutdown.
    """

    name = "poller"

    def __init__(self, poll_interval: float = 1.0):
        self.poll_interval = poll_interval
        self._shutdown = threading.Event()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def request_shutdown(self) -> None:
        """Ask the loop to stop after the batch in progress."""
        self._shutdown.set()

    @abstractmethod
    def poll_once(self) -> BatchResult:
        """Process one batch and return its result."""

    def run(self, once: bool = False) -> int:
        """
        Poll until shutdown is requested.

        Args:
            once: Process a single batch and return

        Returns:
            Number of batches that contained items
        """
        batches = 0
        logger.info(f"Starting {self.name}", extra={"poll_interval": self.poll_interval})

        while not self.shutdown_requested:
            result = self.poll_once()
            if result.total:
                batches += 1

            if once:
                break

            # Idle or partially failed batches back off before polling again
            if result.total == 0 or result.batch_item_failures:
                self._shutdown.wait(self.poll_interval)

        logger.info(f"Stopped {self.name}", extra={"batches": batches})
        return batches


class ChangeFeedPoller(Poller):
    """
    Feeds change events to the ChangeStreamHandler.
    """

    name = "change feed poller"

    def __init__(
        self,
        feed: PostgresChangeFeed,
        handler: ChangeStreamHandler,
        consumer: str = DEFAULT_CONSUMER,
        batch_size: int = 100,
        poll_interval: float = 1.0,
    ):
        """
        Initialize the poller.

        Args:
            feed: Voucher change feed
            handler: Change stream handler
            consumer: Checkpoint name of this consumer
            batch_size: Maximum events per batch
            poll_interval: Seconds to wait when the feed is idle
        """
        super().__init__(poll_interval)
        self.feed = feed
        self.handler = handler
        self.consumer = consumer
        self.batch_size = batch_size

    def poll_once(self) -> BatchResult:
        events = self.feed.read_batch(self.consumer, self.batch_size)
        if not events:
            return BatchResult()

        result = self.handler.handle_batch(events)

        sequence_by_id = {event.event_id: event.sequence_number for event in events}
        failed = [sequence_by_id[item_id] for item_id in result.failed_identifiers]

        if failed:
            lowest_failed = min(failed)
            done = [event.sequence_number for event in events if event.sequence_number < lowest_failed]
            logger.warning(
                f"Change events failed, rereading from sequence {lowest_failed}",
                extra={"consumer": self.consumer, "failed": len(failed)},
            )
        else:
            done = [event.sequence_number for event in events]

        if done:
            self.feed.commit(self.consumer, max(done))
        return result


class WorkQueuePoller(Poller):
    """
    Feeds authorization messages to the AuthorizationQueueHandler.
    """

    name = "work queue poller"

    def __init__(
        self,
        queue: WorkQueue,
        handler: AuthorizationQueueHandler,
        batch_size: int = 1,
        poll_interval: float = 1.0,
    ):
        """
        Initialize the poller.

        Args:
            queue: Authorization work queue
            handler: Authorization queue handler
            batch_size: Maximum messages per receive
            poll_interval: Seconds to wait when the queue is empty
        """
        super().__init__(poll_interval)
        self.queue = queue
        self.handler = handler
        self.batch_size = batch_size

    def poll_once(self) -> BatchResult:
        messages = self.queue.receive(self.batch_size)
        if not messages:
            return BatchResult()

        result = self.handler.handle_batch(messages)
        failures = {failure.item_identifier: failure for failure in result.batch_item_failures}

        for message in messages:
            failure = failures.get(message.message_id)
            if failure is None:
                self.queue.delete(message)
            elif not failure.retriable:
                self.queue.dead_letter(message, f"{failure.error_type}: {failure.error_message}")
            else:
                logger.info(
                    "Message left for redelivery",
                    extra={"message_id": message.message_id, "receive_count": message.receive_count},
                )
        return result
