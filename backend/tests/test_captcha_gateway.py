import requests

from tempmail.core.settings import Settings
from tempmail.security.captcha import (
    RecaptchaVerifier,
    StaticTokenVerifier,
    build_verifier,
)

VERIFY_URL = "https://captcha.invalid/siteverify"


class FakeResponse:
    def __init__(self, body=None, status_code=200, raw=None):
        self._body = body
        self.status_code = status_code
        self._raw = raw

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._raw is not None:
            raise ValueError("not json")
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


def _verifier(session) -> RecaptchaVerifier:
    return RecaptchaVerifier(secret="s3cret", verify_url=VERIFY_URL, timeout=2.5, session=session)


def test_success_posts_secret_response_and_timeout():
    session = FakeSession(FakeResponse({"success": True}))
    result = _verifier(session).verify("tok", remote_ip="1.2.3.4")

    assert result.success is True
    assert result.infrastructure_error is False
    call = session.calls[0]
    assert call["url"] == VERIFY_URL
    assert call["data"] == {"secret": "s3cret", "response": "tok", "remoteip": "1.2.3.4"}
    assert call["timeout"] == 2.5


def test_provider_rejection_carries_error_codes():
    session = FakeSession(FakeResponse({"success": False, "error-codes": ["invalid-input-response"]}))
    result = _verifier(session).verify("tok")
    assert result.success is False
    assert result.error_codes == ["invalid-input-response"]
    assert result.infrastructure_error is False
    assert "remoteip" not in session.calls[0]["data"]


def test_timeout_fails_closed():
    result = _verifier(FakeSession(exc=requests.Timeout("slow"))).verify("tok")
    assert result.success is False
    assert result.infrastructure_error is True
    assert result.error_codes == ["provider-timeout"]


def test_connection_error_fails_closed():
    result = _verifier(FakeSession(exc=requests.ConnectionError("down"))).verify("tok")
    assert result.success is False
    assert result.infrastructure_error is True


def test_http_error_fails_closed():
    result = _verifier(FakeSession(FakeResponse({"success": True}, status_code=502))).verify("tok")
    assert result.success is False
    assert result.infrastructure_error is True


def test_non_json_body_fails_closed():
    result = _verifier(FakeSession(FakeResponse(raw="<html>"))).verify("tok")
    assert result.success is False
    assert result.error_codes == ["provider-malformed-response"]


def test_body_without_boolean_success_fails_closed():
    for body in ({"success": "true"}, {}, ["success"]):
        result = _verifier(FakeSession(FakeResponse(body))).verify("tok")
        assert result.success is False
        assert result.infrastructure_error is True


def test_empty_token_is_not_sent():
    session = FakeSession(FakeResponse({"success": True}))
    result = _verifier(session).verify("")
    assert result.success is False
    assert session.calls == []


def test_static_verifier():
    verifier = StaticTokenVerifier("1234")
    assert verifier.verify("1234").success is True
    assert verifier.verify("9999").success is False
    assert StaticTokenVerifier(None).verify("1234").success is False


def test_build_verifier_prefers_recaptcha_when_secret_configured():
    assert isinstance(build_verifier(Settings(recaptcha_secret_key="abc")), RecaptchaVerifier)
    static = build_verifier(Settings(captcha_valid_token="1234"))
    assert isinstance(static, StaticTokenVerifier)
    assert static.verify("1234").success is True
