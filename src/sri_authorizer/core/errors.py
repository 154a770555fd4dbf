"""
Error taxonomy for the voucher authorization pipeline.

Every error carries a ``retriable`` flag. The batch layer uses it to decide
whether a failed item should be redelivered or dead-lettered right away.
"""


class AuthorizerError(Exception):
    """Base class for all pipeline errors."""

    retriable: bool = True

    def __init__(self, message: str, access_key: str | None = None):
        self.message = message
        self.access_key = access_key
        super().__init__(message)


class MalformedKeyError(AuthorizerError, ValueError):
    """Raised when an access key (or the message carrying it) cannot be decoded."""

    retriable = False


class VoucherNotFoundError(AuthorizerError):
    """Raised when the voucher referenced by an access key does not exist."""

    retriable = False

    def __init__(self, access_key: str):
        super().__init__(f"Voucher not found for accessKey: {access_key}", access_key=access_key)


class RemoteAuthorityError(AuthorizerError):
    """Network, timeout or unexpected-shape error from the remote authority."""

    retriable = True


class MissingRequiredFieldError(AuthorizerError):
    """Raised when a change event lacks a field its transition requires."""

    retriable = False

    def __init__(self, field_name: str, event_id: str | None = None, table_name: str | None = None):
        self.field_name = field_name
        self.event_id = event_id
        self.table_name = table_name
        super().__init__(
            f"Missing required field '{field_name}' in change event "
            f"{event_id} from table {table_name}"
        )


class DownstreamPublishError(AuthorizerError):
    """Raised when sending to the work queue or the notification topic fails."""

    retriable = True


class ConfigurationError(ValueError):
    """Raised at startup when required configuration is missing or invalid."""

    pass


# Errors that are logged and dropped instead of reported for redelivery
DROPPABLE_ERRORS: tuple[type[AuthorizerError], ...] = (
    MalformedKeyError,
    MissingRequiredFieldError,
)


def is_retriable(error: BaseException) -> bool:
    """
    Decide whether a failed item should be redelivered.

    Unknown exceptions (database, storage, I/O) are treated as transient.
    """
    if isinstance(error, AuthorizerError):
        return error.retriable
    return True
