"""
Voucher and VoucherIdentity models.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .enums import SriEnvironment, VoucherStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_messages(value: Any) -> list[str]:
    """
    Normalize a diagnostic messages value into a list of strings.

    The remote authority (and legacy rows) may carry a single scalar,
    a list or nothing at all.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


class VoucherIdentity(BaseModel):
    """
    Structured identity of a voucher, decoded from its access key (immutable).

    Attributes:
        voucher_type: 2-digit voucher type code (01 invoice, 04 credit note, ...)
        environment: Remote authority environment
        establishment: 3-digit establishment code
        branch: 3-digit emission point code
        sequence: 9-digit sequential number
    """

    voucher_type: str = Field(..., min_length=2, max_length=2)
    environment: SriEnvironment
    establishment: str = Field(..., min_length=3, max_length=3)
    branch: str = Field(..., min_length=3, max_length=3)
    sequence: str = Field(..., min_length=9, max_length=9)

    @property
    def voucher_key(self) -> str:
        """Compound sort key used by the voucher table."""
        return (
            f"#{self.voucher_type}#{self.environment.value}"
            f"#{self.establishment}#{self.branch}#{self.sequence}"
        )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "voucher_type": "01",
                "environment": "test",
                "establishment": "001",
                "branch": "002",
                "sequence": "000000123",
            }
        }


class Voucher(BaseModel):
    """
    Durable voucher record.

    Attributes:
        company_id: Issuer tax id (partition key)
        voucher_id: Compound key built from the identity (sort key)
        access_key: 49-character access key
        xml: Reference to (or content of) the signed voucher XML
        status: Lifecycle status
        sri_status: Raw status string returned by the remote authority
        sri_error_identifier: Remote error identifier, if any
        messages: Remote diagnostic messages, in order
        authorization_date: Authorization timestamp reported by the authority
        created_at: When the record was created
        updated_at: Last write (monotonically non-decreasing)
    """

    company_id: str = Field(..., min_length=1)
    voucher_id: str = Field(..., min_length=1)
    access_key: str | None = None
    xml: str | None = None
    status: VoucherStatus
    sri_status: str | None = None
    sri_error_identifier: str | None = None
    messages: list[str] = Field(default_factory=list)
    authorization_date: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("messages", mode="before")
    @classmethod
    def wrap_messages(cls, v):
        """Accept scalar or missing messages and store them as a list."""
        return normalize_messages(v)

    class Config:
        json_schema_extra = {
            "example": {
                "company_id": "1790012345001",
                "voucher_id": "#01#test#001#002#000000123",
                "access_key": "1511202501179001234500110010020000001231234567813",
                "status": "AUTHORIZED",
                "sri_status": "AUTORIZADO",
                "messages": [],
            }
        }
