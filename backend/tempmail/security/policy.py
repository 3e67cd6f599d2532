"""
Admission policy for temporary email creation.

``evaluate`` is a pure function of a counter record and the configured
thresholds. ``apply_decision`` is the matching state transition, run by the
counter store while the identity's lock is held.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from tempmail.security.counters import RateLimitRecord

CAPTCHA_REQUIRED = "CAPTCHA_REQUIRED"
CAPTCHA_INVALID = "CAPTCHA_INVALID"
RATE_LIMITED = "RATE_LIMITED"


@dataclass(frozen=True)
class PolicyConfig:
    captcha_threshold: int
    hard_limit: int
    window_seconds: int
    site_key: str = ""

    def __post_init__(self) -> None:
        if self.hard_limit < 1:
            raise ValueError("hard_limit must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.captcha_enabled and self.captcha_threshold > self.hard_limit:
            raise ValueError("captcha_threshold must not exceed hard_limit")

    @property
    def captcha_enabled(self) -> bool:
        return self.captcha_threshold > 0


@dataclass(frozen=True)
class Allow:
    # The admitted request crosses the CAPTCHA threshold; flag the identity.
    escalate: bool = False


@dataclass(frozen=True)
class AllowWithCaptchaCleared:
    pass


@dataclass(frozen=True)
class RequireCaptcha:
    site_key: str


@dataclass(frozen=True)
class Reject:
    reason: str
    code: str = RATE_LIMITED


AdmissionDecision = Union[Allow, AllowWithCaptchaCleared, RequireCaptcha, Reject]


def evaluate(
    record: RateLimitRecord,
    config: PolicyConfig,
    captcha_verified: Optional[bool] = None,
) -> AdmissionDecision:
    """Decide whether the next request from ``record.identity`` may proceed.

    ``captcha_verified`` is ``None`` when the request carried no CAPTCHA
    response, otherwise the outcome of verifying it. Without CAPTCHA
    escalation the outcome is ignored and only the hard limit applies.
    """
    if config.captcha_enabled:
        if captcha_verified is False:
            return Reject(reason="invalid captcha", code=CAPTCHA_INVALID)
        if captcha_verified:
            return AllowWithCaptchaCleared()
    if record.captcha_required:
        return RequireCaptcha(site_key=config.site_key)
    if record.count >= config.hard_limit:
        return Reject(reason="rate limit exceeded", code=RATE_LIMITED)
    if config.captcha_enabled and record.count + 1 >= config.captcha_threshold:
        return Allow(escalate=True)
    return Allow()


def apply_decision(record: RateLimitRecord, decision: AdmissionDecision) -> None:
    """Mutate ``record`` for an admitted decision; denials leave it untouched."""
    if isinstance(decision, Allow):
        record.count += 1
        if decision.escalate:
            record.captcha_required = True
    elif isinstance(decision, AllowWithCaptchaCleared):
        record.count = 0
        record.captcha_required = False


def is_admitted(decision: AdmissionDecision) -> bool:
    return isinstance(decision, (Allow, AllowWithCaptchaCleared))


__all__ = [
    "CAPTCHA_INVALID",
    "CAPTCHA_REQUIRED",
    "RATE_LIMITED",
    "PolicyConfig",
    "Allow",
    "AllowWithCaptchaCleared",
    "RequireCaptcha",
    "Reject",
    "AdmissionDecision",
    "evaluate",
    "apply_decision",
    "is_admitted",
]
