"""
ChangeEvent model representing one entry of the voucher change feed (ephemeral).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ChangeEventName


class ChangeEvent(BaseModel):
    """
    Before/after images of a single voucher write, as emitted by the change feed.

    Note: ChangeEvent is never persisted by the pipeline itself; it is consumed
    at-least-once from the feed and may be redelivered after a failure.

    Attributes:
        sequence_number: Position of the event in the feed (monotonic per key)
        event_id: Unique identifier of the event
        table_name: Table that emitted the change
        event_name: INSERT, MODIFY or REMOVE
        old_image: Row before the write (None for INSERT)
        new_image: Row after the write (None for REMOVE)
        created_at: When the change was captured
    """

    sequence_number: int = Field(..., ge=0)
    event_id: str = Field(..., min_length=1)
    table_name: str
    event_name: ChangeEventName
    old_image: dict[str, Any] | None = None
    new_image: dict[str, Any] | None = None
    created_at: datetime | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "sequence_number": 42,
                "event_id": "42",
                "table_name": "vouchers",
                "event_name": "MODIFY",
                "old_image": {"status": "SIGNED", "access_key": "1511..."},
                "new_image": {"status": "RECEIVED", "access_key": "1511..."},
            }
        }
