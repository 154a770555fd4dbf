"""
Unit tests for access key decoding
"""
import pytest

from conftest import COMPANY_ID, PRODUCTION_ACCESS_KEY, TEST_ACCESS_KEY
from sri_authorizer.core import access_key
from sri_authorizer.core.errors import MalformedKeyError
from sri_authorizer.core.models import SriEnvironment


@pytest.mark.unit
class TestDecode:
    """Tests for decode()"""

    def test_decodes_fixed_offsets(self):
        """Test every identity field comes from its fixed offset"""
        identity = access_key.decode(TEST_ACCESS_KEY)

        assert identity.voucher_type == "01"
        assert identity.environment == SriEnvironment.TEST
        assert identity.establishment == "001"
        assert identity.branch == "002"
        assert identity.sequence == "000000123"

    def test_production_environment(self):
        """Test any environment digit other than 1 means production"""
        identity = access_key.decode(PRODUCTION_ACCESS_KEY)
        assert identity.environment == SriEnvironment.PRODUCTION

    def test_voucher_key(self):
        """Test the compound table key"""
        identity = access_key.decode(TEST_ACCESS_KEY)
        assert identity.voucher_key == "#01#test#001#002#000000123"
        assert access_key.voucher_key(identity) == identity.voucher_key

    def test_only_first_39_characters_matter(self):
        """Test the trailing characters do not change the identity"""
        assert access_key.decode(TEST_ACCESS_KEY[:39]) == access_key.decode(TEST_ACCESS_KEY)

    def test_short_key_rejected(self):
        """Test a key shorter than 39 characters raises MalformedKeyError"""
        with pytest.raises(MalformedKeyError) as exc_info:
            access_key.decode(TEST_ACCESS_KEY[:38])
        assert "at least 39" in str(exc_info.value)

    def test_non_string_rejected(self):
        """Test a non-string key raises MalformedKeyError"""
        with pytest.raises(MalformedKeyError):
            access_key.decode(None)

    def test_malformed_key_is_not_retriable(self):
        """Test malformed keys are never redelivered"""
        with pytest.raises(MalformedKeyError) as exc_info:
            access_key.decode("short")
        assert exc_info.value.retriable is False


@pytest.mark.unit
def test_company_id():
    """Test the issuer tax id is characters 10..23"""
    assert access_key.company_id(TEST_ACCESS_KEY) == COMPANY_ID


@pytest.mark.unit
def test_company_id_short_key():
    """Test company_id validates the key too"""
    with pytest.raises(MalformedKeyError):
        access_key.company_id("123")
