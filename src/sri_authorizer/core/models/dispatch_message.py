"""
Messages carried on the authorization work queue and the notification topic.
"""

import json
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .enums import DispatchEventType, VoucherStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DispatchMessage(BaseModel):
    """
    Transient message produced by the change dispatcher.

    Safe to deliver more than once: consumers key their work off the access
    key, never off the number of deliveries.

    Attributes:
        access_key: Access key of the voucher
        source_table: Table whose change produced the message
        event_type: AUTHORIZE_VOUCHER or STATUS_CHANGE
        timestamp: When the message was produced
    """

    access_key: str = Field(..., alias="accessKey", min_length=1)
    source_table: str | None = Field(None, alias="sourceTable")
    event_type: DispatchEventType = Field(DispatchEventType.AUTHORIZE_VOUCHER, alias="eventType")
    timestamp: datetime = Field(default_factory=_utc_now)

    def to_json(self) -> str:
        """Serialize with camelCase keys for the wire."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, body: str | bytes) -> "DispatchMessage":
        return cls.model_validate(json.loads(body))

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "accessKey": "1511202501179001234500110010020000001231234567813",
                "sourceTable": "vouchers",
                "eventType": "AUTHORIZE_VOUCHER",
                "timestamp": "2025-11-15T10:00:00Z",
            }
        }


class AuthorizationRequest(BaseModel):
    """
    What the authorization worker reads from a queue body.

    Only ``accessKey`` is required; every other field of the body is ignored.
    """

    access_key: str = Field(..., alias="accessKey", min_length=1)

    @classmethod
    def from_json(cls, body: str | bytes) -> "AuthorizationRequest":
        return cls.model_validate(json.loads(body))

    class Config:
        populate_by_name = True
        extra = "ignore"


class StatusChangeNotification(BaseModel):
    """
    Body of the terminal-state event published on the notification topic.

    Attributes:
        event_type: Always STATUS_CHANGE
        status: New voucher status
        access_key: Access key of the voucher
        timestamp: When the notification was produced
    """

    event_type: DispatchEventType = Field(DispatchEventType.STATUS_CHANGE, alias="eventType")
    status: VoucherStatus
    access_key: str = Field(..., alias="accessKey", min_length=1)
    timestamp: datetime = Field(default_factory=_utc_now)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def attributes(self) -> dict[str, str]:
        """String attributes for subscriber-side filtering."""
        return {
            "eventType": self.event_type.value,
            "status": self.status.value,
        }

    class Config:
        populate_by_name = True
