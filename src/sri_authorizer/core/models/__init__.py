"""
Core data models for the voucher authorization pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .authorization import (
    AUTHORIZED_STATUS,
    AuthorizationDetail,
    AuthorizationResult,
    RawAuthorizationResponse,
)
from .batch import BatchItemFailure, BatchResult
from .change_event import ChangeEvent
from .dispatch_message import AuthorizationRequest, DispatchMessage, StatusChangeNotification
from .enums import (
    ChangeEventName,
    DispatchAction,
    DispatchEventType,
    SriEnvironment,
    VoucherStatus,
)
from .voucher import Voucher, VoucherIdentity, normalize_messages

__all__ = [
    "AUTHORIZED_STATUS",
    "AuthorizationDetail",
    "AuthorizationResult",
    "RawAuthorizationResponse",
    "BatchItemFailure",
    "BatchResult",
    "ChangeEvent",
    "AuthorizationRequest",
    "DispatchMessage",
    "StatusChangeNotification",
    "ChangeEventName",
    "DispatchAction",
    "DispatchEventType",
    "SriEnvironment",
    "VoucherStatus",
    "Voucher",
    "VoucherIdentity",
    "normalize_messages",
]
