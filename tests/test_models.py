"""
Tests for data models: digests, payload parsing and client-side values.
"""
from __future__ import annotations

import hashlib
from dataclasses import FrozenInstanceError

import pytest
from pydantic import ValidationError

from registry_v2.errors import InvalidDigest
from registry_v2.models import (
    BlobUploadSession,
    Catalog,
    Digest,
    Errors,
    Page,
    Tags,
    TokenAuth,
)

HEX = hashlib.sha256(b"hello").hexdigest()


class TestDigest:

    def test_parse_roundtrip(self):
        digest = Digest.parse(f"sha256:{HEX}")
        assert digest.algorithm == "sha256"
        assert digest.hex == HEX
        assert str(digest) == f"sha256:{HEX}"

    def test_equality_ignores_hex_case(self):
        assert Digest.parse(f"sha256:{HEX}") == Digest.parse(f"sha256:{HEX.upper()}")
        assert hash(Digest("sha256", HEX)) == hash(Digest("sha256", HEX.upper()))

    def test_different_algorithms_are_not_equal(self):
        assert Digest("sha256", HEX) != Digest("sha512", HEX)

    def test_compute(self):
        assert Digest.compute(b"hello") == Digest("sha256", HEX)
        sha512 = Digest.compute(b"hello", "sha512")
        assert sha512.hex == hashlib.sha512(b"hello").hexdigest()

    @pytest.mark.parametrize("value", [
        "sha256",
        "sha256:abc",
        f"md5:{HEX}",
        f"sha256:{'z' * 64}",
        "",
    ])
    def test_invalid_digests(self, value):
        with pytest.raises(InvalidDigest):
            Digest.parse(value)

    def test_invalid_digest_is_value_error(self):
        with pytest.raises(ValueError):
            Digest.parse("nope")

    def test_looks_like_digest(self):
        assert Digest.looks_like_digest(f"sha256:{HEX}")
        assert not Digest.looks_like_digest("latest")


class TestPayloads:

    def test_token_auth_optional_fields(self):
        token = TokenAuth.model_validate_json(b'{"token": "abc"}')
        assert token.token == "abc"
        assert token.expires_in is None
        assert token.refresh_token is None

    def test_token_auth_requires_token(self):
        with pytest.raises(ValidationError):
            TokenAuth.model_validate_json(b'{"access_token": "abc"}')

    def test_token_repr_hides_token(self):
        assert "secret-value" not in repr(TokenAuth(token="secret-value"))

    def test_errors_without_detail(self):
        errors = Errors.model_validate_json(
            b'{"errors":[{"code":"UNAUTHORIZED","message":"authentication required"}]}'
        )
        assert errors.errors[0].code == "UNAUTHORIZED"
        assert errors.errors[0].message == "authentication required"
        assert errors.errors[0].detail is None

    def test_errors_with_structured_detail(self):
        errors = Errors.model_validate_json(
            b'{"errors":[{"code":"DENIED","message":"no","detail":[{"Type":"repository","Action":"pull"}]}]}'
        )
        assert errors.errors[0].detail == [{"Type": "repository", "Action": "pull"}]

    def test_catalog_null_repositories(self):
        assert Catalog.model_validate_json(b'{"repositories": null}').repositories == []

    def test_tags_null_tags(self):
        tags = Tags.model_validate_json(b'{"name": "a/b", "tags": null}')
        assert tags.name == "a/b"
        assert tags.tags == []

    def test_listing_keys_required(self):
        with pytest.raises(ValidationError):
            Catalog.model_validate_json(b"{}")
        with pytest.raises(ValidationError):
            Tags.model_validate_json(b'{"name": "a/b"}')


class TestClientValues:

    def test_page_terminal(self):
        assert Page(items=["a"]).is_last
        assert not Page(items=["a"], next="https://r/v2/_catalog?last=a").is_last

    def test_upload_session_is_immutable(self):
        session = BlobUploadSession(repo="r", id="u", location="https://r/up", range_sent=10)
        with pytest.raises(FrozenInstanceError):
            session.range_sent = 0  # type: ignore[misc]
