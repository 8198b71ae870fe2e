"""Tests for api/base.py - Unified API response format."""

import json

from api.base import (
    success_response,
    error_response,
    error_json,
    ErrorCodes,
)


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_structure(self):
        resp = success_response({"foo": "bar"})
        assert resp.success is True
        assert resp.data == {"foo": "bar"}
        assert resp.code is None
        assert resp.message is None

    def test_list_data(self):
        assert success_response([]).model_dump(mode="json", exclude_none=True) == {
            "success": True,
            "data": [],
        }


class TestErrorResponse:
    """Tests for error_response()."""

    def test_structure(self):
        resp = error_response(ErrorCodes.NOT_FOUND, "Task not found")
        assert resp.success is False
        assert resp.code == "NOT_FOUND"
        assert resp.message == "Task not found"
        assert resp.data is None

    def test_field_errors(self):
        resp = error_response(ErrorCodes.VALIDATION_ERROR, "Validation failed", {"title": ["too short"]})
        assert resp.errors == {"title": ["too short"]}


class TestErrorJson:
    """Tests for error_json()."""

    def test_status_and_body(self):
        response = error_json(403, ErrorCodes.FORBIDDEN, "No")
        assert response.status_code == 403
        assert json.loads(response.body) == {"success": False, "code": "FORBIDDEN", "message": "No"}

    def test_headers(self):
        response = error_json(429, ErrorCodes.RATE_LIMITED, "Slow down", headers={"Retry-After": "30"})
        assert response.headers["Retry-After"] == "30"
