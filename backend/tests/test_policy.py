import pytest

from tempmail.security.counters import RateLimitRecord
from tempmail.security.policy import (
    CAPTCHA_INVALID,
    RATE_LIMITED,
    Allow,
    AllowWithCaptchaCleared,
    PolicyConfig,
    Reject,
    RequireCaptcha,
    apply_decision,
    evaluate,
    is_admitted,
)

CONFIG = PolicyConfig(captcha_threshold=3, hard_limit=10, window_seconds=3600, site_key="site")


def _record(count=0, flagged=False) -> RateLimitRecord:
    return RateLimitRecord(identity="ip:1.2.3.4", count=count, window_start=0.0, captcha_required=flagged)


def test_below_threshold_allows():
    assert evaluate(_record(count=0), CONFIG) == Allow()
    assert evaluate(_record(count=1), CONFIG) == Allow()


def test_request_reaching_threshold_is_allowed_and_escalates():
    assert evaluate(_record(count=2), CONFIG) == Allow(escalate=True)


def test_flagged_identity_is_challenged():
    assert evaluate(_record(count=3, flagged=True), CONFIG) == RequireCaptcha(site_key="site")


def test_verified_captcha_clears():
    assert evaluate(_record(count=3, flagged=True), CONFIG, captcha_verified=True) == AllowWithCaptchaCleared()


def test_failed_captcha_rejects_even_when_not_flagged():
    decision = evaluate(_record(count=0), CONFIG, captcha_verified=False)
    assert decision == Reject(reason="invalid captcha", code=CAPTCHA_INVALID)


def test_hard_limit_applies_when_captcha_disabled():
    config = PolicyConfig(captcha_threshold=0, hard_limit=5, window_seconds=3600)
    assert not config.captcha_enabled
    assert evaluate(_record(count=4), config) == Allow()
    assert evaluate(_record(count=5), config) == Reject(reason="rate limit exceeded", code=RATE_LIMITED)


def test_flag_takes_precedence_over_hard_limit():
    assert isinstance(evaluate(_record(count=10, flagged=True), CONFIG), RequireCaptcha)


def test_apply_decision_transitions():
    record = _record(count=2)
    apply_decision(record, Allow(escalate=True))
    assert (record.count, record.captcha_required) == (3, True)

    apply_decision(record, RequireCaptcha(site_key="site"))
    assert (record.count, record.captcha_required) == (3, True)

    apply_decision(record, Reject(reason="invalid captcha", code=CAPTCHA_INVALID))
    assert (record.count, record.captcha_required) == (3, True)

    apply_decision(record, AllowWithCaptchaCleared())
    assert (record.count, record.captcha_required) == (0, False)

    apply_decision(record, Allow())
    assert (record.count, record.captcha_required) == (1, False)


def test_is_admitted():
    assert is_admitted(Allow())
    assert is_admitted(AllowWithCaptchaCleared())
    assert not is_admitted(RequireCaptcha(site_key=""))
    assert not is_admitted(Reject(reason="rate limit exceeded"))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"captcha_threshold": 6, "hard_limit": 5, "window_seconds": 60},
        {"captcha_threshold": 0, "hard_limit": 0, "window_seconds": 60},
        {"captcha_threshold": 1, "hard_limit": 5, "window_seconds": 0},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(ValueError):
        PolicyConfig(**kwargs)


def test_captcha_outcome_ignored_without_escalation():
    config = PolicyConfig(captcha_threshold=0, hard_limit=5, window_seconds=3600, site_key="site")
    limited = Reject(reason="rate limit exceeded", code=RATE_LIMITED)
    assert evaluate(_record(count=5), config, captcha_verified=True) == limited
    assert evaluate(_record(count=5), config, captcha_verified=False) == limited
    assert evaluate(_record(count=1), config, captcha_verified=True) == Allow()
    assert evaluate(_record(count=1), config, captcha_verified=False) == Allow()
