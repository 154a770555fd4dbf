"""
Batch entry points for the two pipeline stages.
"""

from sri_authorizer.authorizer.worker import AuthorizationWorker
from sri_authorizer.core.interfaces import QueueMessage
from sri_authorizer.core.models import BatchResult, ChangeEvent
from sri_authorizer.dispatch.dispatcher import ChangeDispatcher

from .batch import process_batch


class ChangeStreamHandler:
    """
    Runs the change dispatcher over a batch of change events.

    Failed events are reported by event id.
    """

    name = "change_stream"

    def __init__(self, dispatcher: ChangeDispatcher):
        self.dispatcher = dispatcher

    def handle_batch(self, events: list[ChangeEvent]) -> BatchResult:
        return process_batch(
            events,
            self.dispatcher.handle,
            lambda event: event.event_id,
            handler_name=self.name,
        )


class AuthorizationQueueHandler:
    """
    Runs the authorization worker over a batch of queue messages.

    Failed messages are reported by message id.
    """

    name = "authorization_queue"

    def __init__(self, worker: AuthorizationWorker):
        self.worker = worker

    def handle_batch(self, messages: list[QueueMessage]) -> BatchResult:
        return process_batch(
            messages,
            lambda message: self.worker.handle_message(message.body),
            lambda message: message.message_id,
            handler_name=self.name,
        )
