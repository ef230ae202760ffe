"""Tests for error types and codes."""

import pytest

from quarry.core.errors import (
    ConfigError,
    EmbeddingFailureError,
    ErrorCode,
    IndexCorruptionError,
    InternalError,
    NotInitializedError,
    QuarryError,
    QuerySyntaxError,
    ReindexInProgressError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000),
            (ErrorCode.EMBEDDER_NOT_INITIALIZED, 3000),
            (ErrorCode.INDEX_CORRUPTION, 3000),
            (ErrorCode.REINDEX_IN_PROGRESS, 3000),
            (ErrorCode.SERVICE_NOT_INITIALIZED, 3000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(self, code: ErrorCode, expected_range: int) -> None:
        """Error codes fall within their designated numeric range."""
        # Given
        error_code = code

        # When
        value = error_code.value

        # Then
        assert expected_range <= value < expected_range + 1000


class TestQuarryError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = QuarryError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_includes_code_and_name(self) -> None:
        """String form carries code, name and message."""
        # Given
        error = QuarryError(code=ErrorCode.INTERNAL_ERROR, message="boom")

        # When
        text = str(error)

        # Then
        assert text == "[9001] INTERNAL_ERROR: boom"

    def test_given_error_when_raised_then_catchable_as_exception(self) -> None:
        """Errors are ordinary exceptions."""
        with pytest.raises(QuarryError):
            raise ReindexInProgressError.running()


class TestFactories:
    """Classmethod constructors set codes and details."""

    def test_config_errors(self) -> None:
        assert ConfigError.parse_error("/x.yaml", "bad").code == ErrorCode.CONFIG_PARSE_ERROR
        invalid = ConfigError.invalid_value("search.max_limit", -1, "must be > 0")
        assert invalid.code == ErrorCode.CONFIG_INVALID_VALUE
        assert invalid.details["field"] == "search.max_limit"
        assert ConfigError.file_not_found("/x.yaml").code == ErrorCode.CONFIG_FILE_NOT_FOUND

    def test_not_initialized(self) -> None:
        error = NotInitializedError.embedder("bge")
        assert error.code == ErrorCode.EMBEDDER_NOT_INITIALIZED
        assert error.details == {"model": "bge"}
        assert NotInitializedError.service().code == ErrorCode.SERVICE_NOT_INITIALIZED

    def test_index_corruption_not_retryable(self) -> None:
        error = IndexCorruptionError.unreadable("vector", "/db", "file is not a database")
        assert error.retryable is False
        assert error.details["store"] == "vector"

    def test_query_syntax(self) -> None:
        error = QuerySyntaxError.unparseable('"oops', "unbalanced quote")
        assert error.details["query"] == '"oops'

    def test_embedding_failure_retryable(self) -> None:
        assert EmbeddingFailureError.model_call("bge", "timeout").retryable is True

    def test_reindex_in_progress(self) -> None:
        assert ReindexInProgressError.running().code == ErrorCode.REINDEX_IN_PROGRESS

    def test_internal_error_details(self) -> None:
        error = InternalError.unexpected("weird", component="queue")
        assert error.details == {"component": "queue"}
