"""
Remote authority response models.

The remote response is loosely shaped: every field may be missing and the
diagnostic messages may come as a single value or as a list. It is captured
as RawAuthorizationResponse and normalized into AuthorizationDetail before any
business logic looks at it.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from .voucher import normalize_messages

AUTHORIZED_STATUS = "AUTORIZADO"


class RawAuthorizationResponse(BaseModel):
    """
    Remote authority answer as parsed from the wire (all fields optional).

    Attributes:
        status: Remote status string (AUTORIZADO, NO AUTORIZADO, ...)
        voucher: Signed voucher document, present when authorized
        authorization_date: Authorization timestamp as sent by the authority
        authorization_number: Authorization number
        environment: Environment reported by the authority (PRUEBAS, PRODUCCION)
        messages: Diagnostic messages, scalar or list
    """

    status: str | None = None
    voucher: str | None = None
    authorization_date: str | None = Field(None, alias="authorizationDate")
    authorization_number: str | None = Field(None, alias="authorizationNumber")
    environment: str | None = None
    messages: str | list[str] | None = None

    class Config:
        populate_by_name = True


class AuthorizationDetail(BaseModel):
    """
    Fixed-shape detail payload consumed by the authorization worker.

    Attributes:
        status: Remote status string, None when the authority returned no entry
        voucher: Signed voucher document, if any
        authorization_date: Authorization timestamp, if any
        authorization_number: Authorization number, if any
        messages: Diagnostic messages, always a list
    """

    status: str | None = None
    voucher: str | None = None
    authorization_date: str | None = None
    authorization_number: str | None = None
    messages: list[str] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def wrap_scalar_messages(cls, v: Any) -> list[str]:
        """A single scalar message becomes a one-element list."""
        return normalize_messages(v)

    @classmethod
    def from_raw(cls, raw: RawAuthorizationResponse) -> "AuthorizationDetail":
        return cls(
            status=raw.status,
            voucher=raw.voucher,
            authorization_date=raw.authorization_date,
            authorization_number=raw.authorization_number,
            messages=raw.messages,
        )


class AuthorizationResult(BaseModel):
    """
    Outcome of one remote authorization call.

    Attributes:
        authorized: Whether the authority granted authorization
        detail: Normalized detail payload
    """

    authorized: bool
    detail: AuthorizationDetail

    @classmethod
    def from_response(cls, raw: RawAuthorizationResponse) -> "AuthorizationResult":
        detail = AuthorizationDetail.from_raw(raw)
        return cls(authorized=detail.status == AUTHORIZED_STATUS, detail=detail)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AuthorizationResult":
        """Build a result from a camelCase response dictionary."""
        return cls.from_response(RawAuthorizationResponse.model_validate(payload))
