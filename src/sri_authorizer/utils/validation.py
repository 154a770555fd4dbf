"""
Input validation utilities.

Validates the identifiers that end up in SQL statements, queue/topic names
and artifact keys, so misconfiguration fails at startup instead of at the
first write.
"""

import re


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


RESERVED_SQL_KEYWORDS = {
    "select", "insert", "update", "delete", "drop", "create", "alter",
    "table", "database", "index", "view", "user", "grant", "revoke"
}


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Sanitize an SQL identifier (table name).

    Args:
        identifier: The identifier to sanitize
        field_name: Name of the field (for error messages)

    Returns:
        The validated identifier

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> sanitize_sql_identifier("vouchers")
        'vouchers'
        >>> sanitize_sql_identifier("prd_sri_vouchers")
        'prd_sri_vouchers'
    """
    if not identifier or not isinstance(identifier, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()

    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', identifier):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "SQL identifiers must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores."
        )

    # Leave room for the "_change_trigger" style suffixes derived from the name
    if len(identifier) > 40:
        raise ValidationError(f"{field_name} exceeds maximum length of 40 characters")

    if identifier.lower() in RESERVED_SQL_KEYWORDS:
        raise ValidationError(
            f"{field_name} '{identifier}' is a reserved SQL keyword. "
            "Please use a different name."
        )

    return identifier


def validate_channel_name(name: str, field_name: str = "name") -> str:
    """
    Validate a queue or topic name.

    Names must be non-empty and contain only alphanumeric characters,
    hyphens, underscores and dots.

    Examples:
        >>> validate_channel_name("sri-authorizer-queue")
        'sri-authorizer-queue'
    """
    if not name or not isinstance(name, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    name = name.strip()

    if not name:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if not re.match(r'^[a-zA-Z0-9_\-\.]+$', name):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric, hyphens, underscores, and dots are allowed."
        )

    # pg_notify channels are identifiers, limited to 63 bytes
    if len(name) > 59:
        raise ValidationError(f"{field_name} exceeds maximum length of 59 characters")

    return name


def validate_limit(limit: int, field_name: str = "limit", max_limit: int = 10000) -> int:
    """
    Validate a limit / batch size parameter.

    Examples:
        >>> validate_limit(10)
        10
    """
    if not isinstance(limit, int) or isinstance(limit, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(limit).__name__}")

    if limit <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {limit}")

    if limit > max_limit:
        raise ValidationError(f"{field_name} exceeds maximum of {max_limit}")

    return limit


def validate_artifact_key(key: str, field_name: str = "key") -> str:
    """
    Validate an artifact key used as a relative storage path.

    Prevents path traversal and absolute paths.

    Examples:
        >>> validate_artifact_key("1790012345001/authorized/key.xml")
        '1790012345001/authorized/key.xml'
    """
    if not key or not isinstance(key, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    if ".." in key:
        raise ValidationError(f"{field_name} contains path traversal characters (..)")

    if key.startswith("/"):
        raise ValidationError(f"{field_name} must be a relative path")

    if "\x00" in key:
        raise ValidationError(f"{field_name} contains null bytes")

    if len(key) > 1024:
        raise ValidationError(f"{field_name} exceeds maximum length of 1024 characters")

    return key
