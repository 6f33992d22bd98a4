from __future__ import annotations

import pytest

from mise.services.errors import (
    ContentFetchError,
    ExtractionConfigurationError,
    ExtractionError,
    FetchFailedError,
    InvalidURLError,
    MetadataFetchError,
    NetworkTimeoutError,
    NoCaptionsError,
    RateLimitedError,
    ServiceError,
    TranscriptFetchError,
)


class TestServiceError:
    def test_base_exception(self) -> None:
        error = ServiceError("Base service error")
        assert str(error) == "Base service error"
        assert isinstance(error, Exception)

    def test_has_user_message(self) -> None:
        assert ServiceError("internal detail").user_message != "internal detail"


class TestFetchFailures:
    @pytest.mark.parametrize("error_type", [MetadataFetchError, ContentFetchError, TranscriptFetchError])
    def test_subtypes_are_fetch_failures(self, error_type: type) -> None:
        error = error_type("upstream returned 500")
        assert isinstance(error, FetchFailedError)
        assert error.user_message == FetchFailedError.user_message


class TestRateLimitedError:
    def test_is_extraction_error(self) -> None:
        error = RateLimitedError("Too many requests")
        assert "Too many requests" in str(error)
        assert isinstance(error, ExtractionError)

    def test_own_user_message(self) -> None:
        assert RateLimitedError.user_message != ExtractionError.user_message


class TestNoCaptionsError:
    def test_not_a_fetch_failure(self) -> None:
        error = NoCaptionsError("video abc has no captions")
        assert not isinstance(error, FetchFailedError)
        assert "captions" in error.user_message


class TestNetworkTimeoutError:
    def test_timeout_with_url_and_seconds(self) -> None:
        error = NetworkTimeoutError("https://example.com/video", 15.0)
        assert "https://example.com/video" in str(error)
        assert "15" in str(error)
        assert error.url == "https://example.com/video"
        assert error.timeout_seconds == 15.0

    def test_inherits_from_fetch_failed(self) -> None:
        error = NetworkTimeoutError("https://example.com", 10.0)
        assert isinstance(error, FetchFailedError)


class TestExceptionHierarchy:
    def test_all_errors_inherit_from_service_error(self) -> None:
        assert issubclass(InvalidURLError, ServiceError)
        assert issubclass(FetchFailedError, ServiceError)
        assert issubclass(NoCaptionsError, ServiceError)
        assert issubclass(ExtractionError, ServiceError)
        assert issubclass(ExtractionConfigurationError, ServiceError)
        assert issubclass(NetworkTimeoutError, ServiceError)
