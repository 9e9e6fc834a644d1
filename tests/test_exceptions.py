"""Tests for the exception hierarchy."""

import pytest

from biomes.exceptions import (
    AccountDoesntExistError,
    APIError,
    AuthError,
    AuthMismatchError,
    BiomesError,
    BootstrapError,
    BootstrapTimeoutError,
    ConfigurationError,
    ConnectionBrokenError,
    ExhaustedRetriesError,
    HTTPResponseError,
    LoaderStoppedError,
    LoginTimeoutError,
    NetworkError,
    ServiceUnavailableError,
    StallError,
    TransientNetworkError,
)


class TestHierarchy:
    """Every client error is catchable as BiomesError."""

    @pytest.mark.parametrize(
        "error,parent",
        [
            (TransientNetworkError("/x", 3, "down"), NetworkError),
            (ServiceUnavailableError("/x"), NetworkError),
            (HTTPResponseError("/x", 500, "boom"), NetworkError),
            (APIError("not_found"), NetworkError),
            (AuthMismatchError(1, 2), AuthError),
            (AccountDoesntExistError(), AuthError),
            (LoginTimeoutError(60), AuthError),
            (BootstrapTimeoutError(60), BootstrapError),
            (StallError("connecting", 31), BootstrapError),
            (ConnectionBrokenError("disconnected"), BootstrapError),
            (ExhaustedRetriesError(4, "broken"), BootstrapError),
            (LoaderStoppedError(), BootstrapError),
        ],
    )
    def test_parents(self, error, parent):
        assert isinstance(error, parent)
        assert isinstance(error, BiomesError)


class TestMessages:
    """Tests for error messages and details."""

    def test_details_in_str(self):
        error = BiomesError("failed", {"stage": "ready"})
        assert str(error) == "failed (details: {'stage': 'ready'})"

    def test_plain_message(self):
        assert str(BiomesError("failed")) == "failed"

    def test_configuration_error(self):
        error = ConfigurationError("LoaderConfig", "bad retries")
        assert error.component == "LoaderConfig"
        assert "bad retries" in error.message

    def test_api_error_str(self):
        assert str(APIError("not_found")) == "not_found"
        assert str(APIError("not_found", "No such user")) == "not_found: No such user"

    def test_service_unavailable_status(self):
        error = ServiceUnavailableError("/api/x")
        assert error.status == 502
        assert error.message == "/api/x: 502: Unavailable"

    def test_exhausted_retries_attributes(self):
        error = ExhaustedRetriesError(4, "connection broken")
        assert error.attempts == 4
        assert error.details == {"attempts": 4, "reason": "connection broken"}

    def test_stopped_message(self):
        assert LoaderStoppedError().message == "Client loader stopped by user or application."
