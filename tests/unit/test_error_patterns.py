"""Unit tests for vendor error detection."""

import pytest

from dynprov.exceptions import ProviderError, UniversalErrorType
from dynprov.processor.error_patterns import (
    MAX_CHECK_LENGTH,
    check_for_errors,
    extract_check_value,
    matches_error_pattern,
)
from tests.fixtures.sample_data import mapping, provider_config


class TestExtractCheckValue:

    def test_text_body_checked_whole(self):
        assert extract_check_value("  NO_NUMBERS\n") == "NO_NUMBERS"

    def test_error_field_wins(self):
        data = {"message": "ok", "err": "BAD_KEY"}
        assert extract_check_value(data, "err") == "BAD_KEY"

    def test_heuristic_keys_in_order(self):
        assert extract_check_value({"error": "", "message": "bad key", "status": "fail"}) == "bad key"
        assert extract_check_value({"status": "NO_BALANCE"}) == "NO_BALANCE"

    def test_nothing_to_check(self):
        assert extract_check_value({"balance": 5}) == ""
        assert extract_check_value([{"error": "x"}]) == ""
        assert extract_check_value({"error": {"code": 1}}) == ""


class TestMatchesErrorPattern:

    def test_substring_is_case_insensitive(self):
        assert matches_error_pattern("Error: no_numbers left", "NO_NUMBERS") is True
        assert matches_error_pattern("ACCESS_NUMBER:1:2", "NO_NUMBERS") is False

    def test_regex_pattern(self):
        assert matches_error_pattern("No Free Phones", "/no free phones/") is True
        assert matches_error_pattern("order not found", "/^no (free|more) phones$/") is False

    def test_invalid_regex_never_matches(self):
        assert matches_error_pattern("anything", "/([/") is False


class TestCheckForErrors:

    def test_raises_typed_error(self):
        config = provider_config(errorPatterns={"NO_NUMBERS": "NO_NUMBERS"})
        with pytest.raises(ProviderError) as exc_info:
            check_for_errors("NO_NUMBERS", config)

        error = exc_info.value
        assert error.error_type == UniversalErrorType.NO_NUMBERS
        assert error.raw_response == "NO_NUMBERS"
        assert error.is_retryable
        assert error.is_no_stock
        assert not error.is_permanent

    def test_clean_response_passes(self):
        config = provider_config(errorPatterns={"BAD_KEY": "BAD_KEY"})
        check_for_errors("ACCESS_NUMBER:1:79001234567", config)
        check_for_errors({"balance": 5}, config)

    def test_mapping_patterns_checked_first(self):
        config = provider_config(errorPatterns={"BAD_KEY": "bad"})
        definition = mapping(errorPatterns={"BAD_SERVICE": "bad"})
        with pytest.raises(ProviderError) as exc_info:
            check_for_errors("bad service", config, definition)
        assert exc_info.value.error_type == UniversalErrorType.BAD_SERVICE

    def test_mapping_error_field(self):
        config = provider_config(errorPatterns={"BAD_KEY": "wrong api key"})
        definition = mapping(errorField="detail")
        with pytest.raises(ProviderError) as exc_info:
            check_for_errors({"detail": "Wrong API key"}, config, definition)
        assert exc_info.value.is_permanent

    def test_long_bodies_ignored(self):
        config = provider_config(errorPatterns={"SERVER_ERROR": "error"})
        check_for_errors("error " * MAX_CHECK_LENGTH, config)

    def test_lifecycle_terminal_errors(self):
        config = provider_config(errorPatterns={"ACTIVATION_CANCELLED": "already been canceled"})
        with pytest.raises(ProviderError) as exc_info:
            check_for_errors("order has already been canceled", config)
        assert exc_info.value.is_lifecycle_terminal
        assert not exc_info.value.is_retryable
