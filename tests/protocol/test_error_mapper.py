"""
Tests for response-to-error mapping.
"""
from __future__ import annotations

import httpx
import pytest

from registry_v2.errors import RegistryApiError, UnexpectedStatus
from registry_v2.protocol.error_mapper import ensure_status, error_from_response, parse_error_envelope
from tests.fakes.fake_registry import error_body


def _response(status: int, content: bytes = b"") -> httpx.Response:
    return httpx.Response(status, content=content,
                          request=httpx.Request("GET", "https://registry.example.test/v2/x"))


class TestParseErrorEnvelope:

    def test_valid_envelope(self):
        envelope = parse_error_envelope(error_body("NAME_UNKNOWN", "repository name not known to registry"))
        assert envelope.errors[0].code == "NAME_UNKNOWN"

    def test_multiple_entries_keep_order(self):
        body = (b'{"errors":[{"code":"DENIED","message":"a"},'
                b'{"code":"UNAUTHORIZED","message":"b"}]}')
        assert [e.code for e in parse_error_envelope(body).errors] == ["DENIED", "UNAUTHORIZED"]

    @pytest.mark.parametrize("body", [
        b"",
        b"<html>Bad Gateway</html>",
        b'{"message": "not an envelope"}',
        b'{"errors": []}',
        b'{"errors": [{"message": "no code"}]}',
    ])
    def test_not_an_envelope(self, body):
        assert parse_error_envelope(body) is None


class TestErrorFromResponse:

    def test_envelope_wins(self):
        error = error_from_response(_response(401, error_body("UNAUTHORIZED", "authentication required")))

        assert isinstance(error, RegistryApiError)
        assert error.status == 401
        assert "UNAUTHORIZED" in str(error)

    def test_bare_status(self):
        error = error_from_response(_response(500, b"oops"))

        assert isinstance(error, UnexpectedStatus)
        assert error.status == 500
        assert "500" in str(error)

    def test_ensure_status_passes_expected(self):
        response = _response(204)
        assert ensure_status(response, 200, 204) is response

    def test_ensure_status_raises(self):
        with pytest.raises(UnexpectedStatus):
            ensure_status(_response(409), 201)
