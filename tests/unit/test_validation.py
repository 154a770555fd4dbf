"""
Unit tests for input validation utilities and the error taxonomy.
"""

import pytest

from sri_authorizer.core.errors import (
    ConfigurationError,
    DownstreamPublishError,
    MalformedKeyError,
    MissingRequiredFieldError,
    RemoteAuthorityError,
    VoucherNotFoundError,
    is_retriable,
)
from sri_authorizer.utils.validation import (
    ValidationError,
    sanitize_sql_identifier,
    validate_artifact_key,
    validate_channel_name,
    validate_limit,
)


# =======================
# VALIDATION UTILITIES TESTS
# =======================

class TestValidationUtilities:
    """Test the input validation utilities."""

    def test_sanitize_sql_identifier_valid(self):
        """Test valid table names."""
        assert sanitize_sql_identifier("vouchers") == "vouchers"
        assert sanitize_sql_identifier("prd_sri_vouchers") == "prd_sri_vouchers"
        assert sanitize_sql_identifier("  vouchers ") == "vouchers"

    def test_sanitize_sql_identifier_invalid(self):
        """Test invalid table names."""
        with pytest.raises(ValidationError, match="must be a non-empty string"):
            sanitize_sql_identifier("")

        with pytest.raises(ValidationError, match="invalid characters"):
            sanitize_sql_identifier("vouchers; DROP TABLE x")

        with pytest.raises(ValidationError, match="invalid characters"):
            sanitize_sql_identifier("1vouchers")

        with pytest.raises(ValidationError, match="reserved SQL keyword"):
            sanitize_sql_identifier("select")

        with pytest.raises(ValidationError, match="maximum length"):
            sanitize_sql_identifier("v" * 41)

    def test_validate_channel_name(self):
        """Test queue and topic names."""
        assert validate_channel_name("sri-authorizer") == "sri-authorizer"
        assert validate_channel_name("prd.voucher_status") == "prd.voucher_status"

        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_channel_name("   ")

        with pytest.raises(ValidationError, match="invalid characters"):
            validate_channel_name("queue name")

        with pytest.raises(ValidationError, match="maximum length"):
            validate_channel_name("q" * 60)

    def test_validate_limit(self):
        """Test limit validation."""
        assert validate_limit(10) == 10

        with pytest.raises(ValidationError, match="positive integer"):
            validate_limit(0)

        with pytest.raises(ValidationError, match="must be an integer"):
            validate_limit("10")

        with pytest.raises(ValidationError, match="must be an integer"):
            validate_limit(True)

        with pytest.raises(ValidationError, match="exceeds maximum"):
            validate_limit(10001)

    def test_validate_artifact_key(self):
        """Test artifact key validation."""
        assert validate_artifact_key("c/authorized/k.xml") == "c/authorized/k.xml"

        with pytest.raises(ValidationError, match="path traversal"):
            validate_artifact_key("../k.xml")

        with pytest.raises(ValidationError, match="relative path"):
            validate_artifact_key("/k.xml")

        with pytest.raises(ValidationError, match="null bytes"):
            validate_artifact_key("k\x00.xml")


# =======================
# ERROR TAXONOMY TESTS
# =======================

class TestErrorTaxonomy:
    """Test the retriable flags of pipeline errors."""

    @pytest.mark.parametrize(
        "error,retriable",
        [
            (MalformedKeyError("bad"), False),
            (VoucherNotFoundError("key"), False),
            (MissingRequiredFieldError("access_key"), False),
            (RemoteAuthorityError("timeout"), True),
            (DownstreamPublishError("queue down"), True),
            (RuntimeError("unknown"), True),
        ],
    )
    def test_is_retriable(self, error, retriable):
        assert is_retriable(error) is retriable

    def test_missing_field_message(self):
        error = MissingRequiredFieldError("access_key", event_id="42", table_name="vouchers")

        assert error.field_name == "access_key"
        assert "42" in error.message
        assert "vouchers" in error.message

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)
