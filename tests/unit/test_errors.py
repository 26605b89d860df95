"""Unit tests for error formatting"""

import pytest
from authgate.errors import (
    ApplicationNotFoundError,
    HasApplicationsError,
    NotAuthenticatedError,
    NotAuthorizedError,
    OutdatedTokenError,
    error_body,
    format_validation_error,
)

pytestmark = pytest.mark.unit


class TestTaxonomy:
    """Status codes and fixed messages"""

    @pytest.mark.parametrize("error_class,status_code,detail", [
        (NotAuthenticatedError, 401, "Not authenticated"),
        (NotAuthorizedError, 403, "Not authorized"),
        (ApplicationNotFoundError, 404, "Application not found"),
        (HasApplicationsError, 400, "Organizations with associated applications cannot be deleted"),
    ])
    def test_defaults(self, error_class, status_code, detail):
        error = error_class()
        assert error.status_code == status_code
        assert error.detail == detail

    def test_outdated_token_message(self):
        assert OutdatedTokenError().detail.startswith("Your token is outdated.")

    def test_custom_detail(self):
        assert NotAuthorizedError("Nope").detail == "Nope"

    def test_envelope(self):
        assert error_body(404, "Application not found") == {
            "errors": [{"status": 404, "detail": "Application not found"}]
        }


class TestFormatValidationError:
    """Pydantic errors rendered as short messages"""

    def test_extra_field(self):
        error = {"type": "extra_forbidden", "loc": ("body", "potato"), "msg": "Extra inputs are not permitted"}
        assert format_validation_error(error) == '"potato" is not allowed'

    def test_missing_field(self):
        error = {"type": "missing", "loc": ("body", "name"), "msg": "Field required"}
        assert format_validation_error(error) == '"name" is required'

    def test_value_error_uses_message(self):
        error = {
            "type": "value_error",
            "loc": ("body",),
            "msg": "Value error, boom",
            "ctx": {"error": ValueError("boom")},
        }
        assert format_validation_error(error) == "boom"

    def test_other_errors(self):
        error = {"type": "less_than_equal", "loc": ("query", "page[size]"),
                 "msg": "Input should be less than or equal to 100"}
        assert format_validation_error(error) == '"page[size]" Input should be less than or equal to 100'
