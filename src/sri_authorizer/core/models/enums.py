"""
Enumerations shared by the voucher models.
"""

from enum import Enum


class SriEnvironment(str, Enum):
    """Remote authority environment encoded in the access key."""

    TEST = "test"
    PRODUCTION = "production"


class VoucherStatus(str, Enum):
    """Lifecycle status of a voucher."""

    ERROR = "ERROR"
    INITIAL = "INITIAL"
    GENERATED = "GENERATED"
    SIGNED = "SIGNED"
    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    REJECTED = "REJECTED"
    AUTHORIZED = "AUTHORIZED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"


class ChangeEventName(str, Enum):
    """Kind of write observed on the change feed."""

    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


class DispatchEventType(str, Enum):
    """Event type carried by dispatch messages."""

    AUTHORIZE_VOUCHER = "AUTHORIZE_VOUCHER"
    STATUS_CHANGE = "STATUS_CHANGE"


class DispatchAction(str, Enum):
    """What the dispatcher did with a change event."""

    AUTHORIZE = "authorize"
    NOTIFY = "notify"
    NONE = "none"
    DROPPED = "dropped"
