"""Tests for the shared response envelope."""

import pytest
from shared.envelope import (
    BAD_REQUEST,
    FORM_FORMATS,
    INTERNAL_ERROR,
    KNOWN_FORMATS,
    SUCCESS,
    ApiResponse,
)


class TestApiResponse:
    def test_success(self):
        resp = ApiResponse.success({"value": 42})
        d = resp.to_dict()
        assert d == {"code": SUCCESS, "message": "", "data": {"value": 42}}
        assert resp.ok

    def test_fail(self):
        resp = ApiResponse.fail(BAD_REQUEST, "Method not found.")
        d = resp.to_dict()
        assert d["code"] == 400
        assert d["message"] == "Method not found."
        assert d["data"] is None
        assert not resp.ok

    def test_business_code_is_not_ok(self):
        assert not ApiResponse.fail(1001, "Insufficient balance.").ok

    def test_from_dict_valid(self):
        resp = ApiResponse.from_dict({"code": 0, "message": "", "data": [1, 2]})
        assert resp.ok
        assert resp.data == [1, 2]

    def test_from_dict_null_message(self):
        resp = ApiResponse.from_dict({"code": INTERNAL_ERROR, "message": None})
        assert resp.message == ""
        assert resp.data is None

    def test_from_dict_missing_code(self):
        with pytest.raises(ValueError, match="code"):
            ApiResponse.from_dict({"message": "x"})

    def test_from_dict_bool_code(self):
        with pytest.raises(ValueError, match="code"):
            ApiResponse.from_dict({"code": True})

    def test_from_dict_bad_message(self):
        with pytest.raises(ValueError, match="message"):
            ApiResponse.from_dict({"code": 0, "message": 5})

    def test_from_dict_not_dict(self):
        with pytest.raises(ValueError, match="JSON object"):
            ApiResponse.from_dict("hello")  # type: ignore


def test_formats():
    assert FORM_FORMATS == {"post", "get"}
    assert KNOWN_FORMATS == {"post", "get", "json"}
