"""
Access key decoding.

An SRI access key is a 49-character string with fixed-offset fields:

    ddmmyyyy | type | issuer tax id | env | estab | branch | sequence | code | emission | check
    [0,8)      [8,10) [10,23)        [23]  [24,27) [27,30)  [30,39)    ...

Only the first 39 characters are needed to identify a voucher.
"""

from .errors import MalformedKeyError
from .models import SriEnvironment, VoucherIdentity

MIN_ACCESS_KEY_LENGTH = 39
ACCESS_KEY_LENGTH = 49

TEST_ENVIRONMENT_CODE = "1"


def _require_key(access_key: str) -> str:
    if not isinstance(access_key, str):
        raise MalformedKeyError(
            f"Access key must be a string, got {type(access_key).__name__}"
        )
    if len(access_key) < MIN_ACCESS_KEY_LENGTH:
        raise MalformedKeyError(
            f"Access key must have at least {MIN_ACCESS_KEY_LENGTH} characters, "
            f"got {len(access_key)}",
            access_key=access_key,
        )
    return access_key


def decode(access_key: str) -> VoucherIdentity:
    """
    Decode an access key into a VoucherIdentity.

    Args:
        access_key: Access key string (49 characters, at least 39 are read)

    Returns:
        VoucherIdentity derived from fixed offsets

    Raises:
        MalformedKeyError: If the key is not a string or is too short

    Examples:
        >>> decode("1511202501179001234500110010020000001231234567813").environment
        <SriEnvironment.TEST: 'test'>
    """
    key = _require_key(access_key)
    environment = (
        SriEnvironment.TEST
        if key[23:24] == TEST_ENVIRONMENT_CODE
        else SriEnvironment.PRODUCTION
    )
    return VoucherIdentity(
        voucher_type=key[8:10],
        environment=environment,
        establishment=key[24:27],
        branch=key[27:30],
        sequence=key[30:39],
    )


def company_id(access_key: str) -> str:
    """Return the 13-character issuer tax id embedded in the access key."""
    return _require_key(access_key)[10:23]


def voucher_key(identity: VoucherIdentity) -> str:
    """Return the compound table key for an identity."""
    return identity.voucher_key
