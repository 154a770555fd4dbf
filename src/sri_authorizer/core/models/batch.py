"""
Partial-batch result models.
"""

from pydantic import BaseModel, Field


class BatchItemFailure(BaseModel):
    """
    A single failed item of a batch.

    Attributes:
        item_identifier: Message id or change sequence number of the item
        error_type: Exception class name
        error_message: Exception message
        retriable: False when redelivery cannot succeed (dead-letter instead)
    """

    item_identifier: str
    error_type: str
    error_message: str = ""
    retriable: bool = True


class BatchResult(BaseModel):
    """
    Outcome of processing a batch of queue messages or change events.

    Only failed items are reported; every other item is considered done.
    """

    total: int = 0
    dropped: int = 0
    batch_item_failures: list[BatchItemFailure] = Field(default_factory=list)

    @property
    def failed_identifiers(self) -> list[str]:
        return [failure.item_identifier for failure in self.batch_item_failures]

    @property
    def succeeded(self) -> int:
        return self.total - len(self.batch_item_failures)

    def to_response(self) -> dict:
        """Wire shape expected by batch triggers reporting item failures."""
        return {
            "batchItemFailures": [
                {"itemIdentifier": failure.item_identifier}
                for failure in self.batch_item_failures
            ]
        }
