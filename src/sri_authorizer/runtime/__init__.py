"""
Batch processing, handlers and pollers.
"""

from .batch import process_batch
from .handlers import AuthorizationQueueHandler, ChangeStreamHandler
from .pollers import ChangeFeedPoller, Poller, WorkQueuePoller

__all__ = [
    "AuthorizationQueueHandler",
    "ChangeFeedPoller",
    "ChangeStreamHandler",
    "Poller",
    "WorkQueuePoller",
    "process_batch",
]
