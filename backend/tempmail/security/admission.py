from __future__ import annotations

import time
from typing import Callable, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from tempmail.core.settings import Settings
from tempmail.security.captcha import CaptchaVerifier, build_verifier
from tempmail.security.counters import CounterStore, RateLimitRecord
from tempmail.security.logger import admission_logger as logger
from tempmail.security.policy import (
    CAPTCHA_REQUIRED,
    RATE_LIMITED,
    AdmissionDecision,
    Allow,
    PolicyConfig,
    Reject,
    RequireCaptcha,
    apply_decision,
    evaluate,
    is_admitted,
)

CAPTCHA_REQUIRED_MESSAGE = "You have exceeded the rate limit. Please complete the CAPTCHA."


class AdmissionGate:
    """Rate limiting with CAPTCHA escalation in front of email creation."""

    def __init__(self, store: CounterStore, config: PolicyConfig, verifier: CaptchaVerifier) -> None:
        self.store = store
        self.config = config
        self.verifier = verifier

    def _settle(self, record: RateLimitRecord, captcha_verified: Optional[bool]) -> AdmissionDecision:
        # Runs under the identity's stripe lock.
        decision = evaluate(record, self.config, captcha_verified)
        apply_decision(record, decision)
        return decision

    def admit(
        self,
        identity: str,
        captcha_response: Optional[str] = None,
        remote_ip: Optional[str] = None,
    ) -> AdmissionDecision:
        record = self.store.get_or_create(identity)

        if captcha_response and self.config.captcha_enabled:
            # The provider call happens without holding the stripe lock.
            result = self.verifier.verify(captcha_response, remote_ip=remote_ip)
            if not result.success:
                if result.infrastructure_error:
                    logger.error(f"CAPTCHA verification unavailable for {identity}: {result.error_codes}")
                else:
                    logger.warning(f"CAPTCHA verification failed for {identity}: {result.error_codes}")
                return evaluate(record, self.config, captcha_verified=False)
            decision = self.store.apply(identity, lambda rec: self._settle(rec, True))
            logger.info(f"CAPTCHA solved by {identity}; counter reset")
            return decision

        decision = self.store.apply(identity, lambda rec: self._settle(rec, None))
        if isinstance(decision, Allow) and decision.escalate:
            logger.info(f"CAPTCHA now required for {identity}")
        elif isinstance(decision, RequireCaptcha):
            logger.warning(f"CAPTCHA challenge issued to {identity}")
        elif isinstance(decision, Reject):
            logger.warning(f"Rejected email creation for {identity}: {decision.reason}")
        return decision

    def denial_response(self, identity: str, decision: AdmissionDecision) -> Optional[JSONResponse]:
        """Map a denial to its HTTP response; ``None`` means the request may proceed."""
        if is_admitted(decision):
            return None

        if isinstance(decision, Reject) and not self.config.captcha_enabled:
            # Nothing to solve; only waiting out the window helps.
            return self._rate_limited(identity, decision.reason)

        if isinstance(decision, RequireCaptcha):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": CAPTCHA_REQUIRED,
                    "captchaRequired": True,
                    "captchaSiteKey": decision.site_key,
                    "message": CAPTCHA_REQUIRED_MESSAGE,
                },
                headers={"X-Captcha-Required": "true"},
            )

        if decision.code != RATE_LIMITED:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": decision.code,
                    "captchaRequired": True,
                    "captchaSiteKey": self.config.site_key,
                    "message": decision.reason,
                },
                headers={"X-Captcha-Required": "true"},
            )

        return self._rate_limited(identity, decision.reason)

    def _rate_limited(self, identity: str, reason: str) -> JSONResponse:
        headers: Dict[str, str] = {}
        retry_after = self.store.seconds_until_rollover(identity)
        if retry_after:
            headers["Retry-After"] = str(retry_after)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": RATE_LIMITED, "message": reason},
            headers=headers or None,
        )


def build_gate(
    settings: Settings,
    verifier: Optional[CaptchaVerifier] = None,
    clock: Callable[[], float] = time.time,
) -> AdmissionGate:
    config = PolicyConfig(
        captcha_threshold=settings.email_captcha_threshold,
        hard_limit=settings.email_hard_limit,
        window_seconds=settings.email_window_seconds,
        site_key=settings.recaptcha_site_key,
    )
    store = CounterStore(
        window_seconds=config.window_seconds,
        max_entries=settings.counter_store_max_entries,
        stripes=settings.counter_store_stripes,
        clock=clock,
    )
    return AdmissionGate(store=store, config=config, verifier=verifier or build_verifier(settings))


def get_admission_gate(request: Request) -> AdmissionGate:
    return request.app.state.admission_gate


__all__ = ["AdmissionGate", "build_gate", "get_admission_gate"]
