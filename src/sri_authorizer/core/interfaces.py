"""
Interfaces of the collaborators the pipeline depends on.

Components receive implementations of these through their constructors;
the PostgreSQL-backed implementations live in ``sri_authorizer.warehouse``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .models import AuthorizationResult, SriEnvironment, Voucher, VoucherIdentity, VoucherStatus


class VoucherStore(ABC):
    """Durable voucher table keyed by (company_id, voucher identity)."""

    @abstractmethod
    def get(self, company_id: str, identity: VoucherIdentity) -> Voucher | None:
        """Return the voucher, or None when absent."""
        pass

    @abstractmethod
    def update_status(
        self,
        company_id: str,
        identity: VoucherIdentity,
        status: VoucherStatus,
        messages: list[str] | None = None,
        sri_status: str | None = None,
        authorization_date: str | None = None,
    ) -> None:
        """
        Unconditionally overwrite status, messages and updated_at.

        A missing key yields a partial record; callers check existence first.
        """
        pass

    @abstractmethod
    def put(self, voucher: Voucher) -> None:
        """Create or replace a full voucher record."""
        pass


class QueueMessage(BaseModel):
    """
    A message received from a work queue.

    Attributes:
        message_id: Stable id of the message across deliveries
        receipt_handle: Handle of this delivery (needed to delete or dead-letter)
        body: Message body
        attributes: String attributes
        receive_count: How many times the message has been received
        sent_at: When the message was first sent
    """

    message_id: str
    receipt_handle: str
    body: str
    attributes: dict[str, str] = Field(default_factory=dict)
    receive_count: int = 1
    sent_at: datetime | None = None


class WorkQueue(ABC):
    """At-least-once work queue with visibility timeout and dead-letter queue."""

    @abstractmethod
    def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        """Send a message and return its id."""
        pass

    @abstractmethod
    def receive(self, max_messages: int = 1) -> list[QueueMessage]:
        """Receive up to max_messages visible messages."""
        pass

    @abstractmethod
    def delete(self, message: QueueMessage) -> None:
        """Acknowledge a message so it is never redelivered."""
        pass

    @abstractmethod
    def dead_letter(self, message: QueueMessage, reason: str) -> None:
        """Move a message to the dead-letter queue immediately."""
        pass


class Topic(ABC):
    """At-least-once publish/subscribe topic with string attributes."""

    @abstractmethod
    def publish(self, body: str, attributes: dict[str, str] | None = None) -> str:
        """Publish a message and return its id."""
        pass


class AuthorityClient(ABC):
    """Remote authority answering authorization queries."""

    @abstractmethod
    def authorize(self, access_key: str, environment: SriEnvironment) -> AuthorizationResult:
        """
        Query the authorization status of a voucher.

        Raises:
            RemoteAuthorityError: On network, timeout or unexpected-shape errors
        """
        pass


def describe(collaborator: Any) -> str:
    """Short name of a collaborator for startup logs."""
    if collaborator is None:
        return "disabled"
    return type(collaborator).__name__
