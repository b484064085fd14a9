"""Tests for platform payload types and error classification."""

from __future__ import annotations

from datetime import timezone

import pytest

from wewe_sync.integrations.wewe import (
    Credential,
    CredentialFormatError,
    ErrorKind,
    LoginResult,
    MpArticle,
    MpInfo,
    RetryPolicy,
    WeReadApiError,
    classify_status,
)


class TestClassifyStatus:
    """Tests for HTTP status classification."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (400, ErrorKind.BAD_REQUEST),
            (401, ErrorKind.UNAUTHORIZED),
            (403, ErrorKind.UNAUTHORIZED),
            (429, ErrorKind.RATE_LIMITED),
            (500, ErrorKind.SERVER),
            (502, ErrorKind.SERVER),
            (503, ErrorKind.SERVER),
            (504, ErrorKind.SERVER),
            (418, ErrorKind.UNEXPECTED),
        ],
    )
    def test_status_table(self, status, kind):
        assert classify_status(status) is kind

    def test_body_code_fallback(self):
        assert classify_status(422, "upstream WeReadError401") is ErrorKind.UNAUTHORIZED

    def test_status_table_wins_over_body(self):
        assert classify_status(500, "WeReadError429") is ErrorKind.SERVER

    def test_only_network_and_server_are_retryable(self):
        retryable = {kind for kind in ErrorKind if kind.retryable}
        assert retryable == {ErrorKind.NETWORK, ErrorKind.SERVER}

    def test_error_carries_kind(self):
        error = WeReadApiError(ErrorKind.SERVER, "boom", status_code=503)
        assert error.retryable
        assert error.status_code == 503
        assert "server" in repr(error)


class TestCredential:
    """Tests for the typed credential."""

    def test_headers(self):
        credential = Credential(external_id="vid-1", token="tok")
        assert credential.headers() == {"xid": "vid-1", "Authorization": "Bearer tok"}

    @pytest.mark.parametrize("external_id,token", [("", "tok"), ("vid-1", ""), ("", "")])
    def test_validate_rejects_missing_fields(self, external_id, token):
        with pytest.raises(CredentialFormatError):
            Credential(external_id=external_id, token=token).validate()

    def test_from_payload_mapping(self):
        credential = Credential.from_payload({"external_id": "vid-1", "token": "tok"})
        assert credential == Credential(external_id="vid-1", token="tok")

    def test_legacy_string_payload_fails_validation(self):
        credential = Credential.from_payload("legacy-token")
        assert credential.token == "legacy-token"
        with pytest.raises(CredentialFormatError):
            credential.validate()

    def test_repr_masks_token(self):
        assert "tok" not in repr(Credential(external_id="vid-1", token="tok"))


class TestPayloads:
    """Tests for API payload parsing."""

    def test_retry_policy_delays_double(self):
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_login_result_completed_requires_vid_and_token(self):
        assert not LoginResult.from_api_payload({"message": "waiting"}).completed
        assert not LoginResult.from_api_payload({"vid": "1", "token": ""}).completed
        assert LoginResult.from_api_payload({"vid": "1", "token": "t"}).completed

    def test_mp_info_defaults_name_to_id(self):
        info = MpInfo.from_api_payload({"id": "MP_1"})
        assert info.name == "MP_1"
        assert info.update_time == 0

    def test_mp_article_urls_and_dates(self):
        article = MpArticle.from_api_payload({"id": "abc", "title": "T", "publishTime": 1700000000})
        assert article.source_url == "https://mp.weixin.qq.com/s/abc"
        assert article.published_at.tzinfo is timezone.utc
        assert article.published_at.year == 2023
