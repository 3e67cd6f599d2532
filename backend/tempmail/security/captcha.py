"""
CAPTCHA verification for the email admission gate.

``RecaptchaVerifier`` talks to a siteverify-style endpoint with a shared
secret.  Every outcome other than an explicit ``success: true`` from the
provider is a failure: timeouts, connection errors, HTTP errors and malformed
bodies included.  Those infrastructure faults are flagged on the result so
they can be logged apart from user mistakes; callers answer the client the
same way in both cases.

``StaticTokenVerifier`` accepts a single configured token and is meant for
local development and tests.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import requests

from tempmail.core.settings import Settings
from tempmail.security.logger import admission_logger as logger


@dataclass(frozen=True)
class CaptchaResult:
    success: bool
    error_codes: List[str] = field(default_factory=list)
    infrastructure_error: bool = False


class CaptchaVerifier(Protocol):
    def verify(self, token: str, remote_ip: Optional[str] = None) -> CaptchaResult:
        ...


def _infra_failure(code: str) -> CaptchaResult:
    return CaptchaResult(success=False, error_codes=[code], infrastructure_error=True)


class RecaptchaVerifier:
    def __init__(
        self,
        secret: str,
        verify_url: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def verify(self, token: str, remote_ip: Optional[str] = None) -> CaptchaResult:
        if not token:
            return CaptchaResult(success=False, error_codes=["missing-input-response"])

        data = {"secret": self.secret, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            response = self._session.post(self.verify_url, data=data, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout:
            logger.error(f"CAPTCHA provider timed out after {self.timeout}s")
            return _infra_failure("provider-timeout")
        except requests.RequestException as exc:
            logger.error(f"CAPTCHA provider request failed: {exc.__class__.__name__}")
            return _infra_failure("provider-unavailable")

        try:
            body = response.json()
        except ValueError:
            logger.error("CAPTCHA provider returned a non-JSON body")
            return _infra_failure("provider-malformed-response")

        if not isinstance(body, dict) or not isinstance(body.get("success"), bool):
            logger.error("CAPTCHA provider response has no boolean 'success'")
            return _infra_failure("provider-malformed-response")

        codes = body.get("error-codes") or []
        if not isinstance(codes, list):
            codes = [str(codes)]
        return CaptchaResult(success=body["success"], error_codes=[str(c) for c in codes])


class StaticTokenVerifier:
    def __init__(self, expected_token: Optional[str]) -> None:
        self.expected_token = expected_token

    def verify(self, token: str, remote_ip: Optional[str] = None) -> CaptchaResult:
        expected = self.expected_token
        if not expected:
            return CaptchaResult(success=False, error_codes=["verifier-not-configured"])
        if token and hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            return CaptchaResult(success=True)
        return CaptchaResult(success=False, error_codes=["invalid-input-response"])


def build_verifier(settings: Settings) -> CaptchaVerifier:
    if settings.recaptcha_secret_key:
        return RecaptchaVerifier(
            secret=settings.recaptcha_secret_key,
            verify_url=settings.recaptcha_verify_url,
            timeout=settings.recaptcha_timeout_seconds,
        )
    return StaticTokenVerifier(settings.captcha_valid_token)


__all__ = [
    "CaptchaResult",
    "CaptchaVerifier",
    "RecaptchaVerifier",
    "StaticTokenVerifier",
    "build_verifier",
]
