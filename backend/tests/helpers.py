from typing import Iterable, List, Optional

from jose import jwt

from tempmail.core.settings import get_settings
from tempmail.security.admission import AdmissionGate
from tempmail.security.captcha import CaptchaResult
from tempmail.security.counters import CounterStore
from tempmail.security.policy import PolicyConfig

SITE_KEY = "site-key-123"
GOOD_TOKEN = "solved-captcha"
WINDOW = 3600


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVerifier:
    def __init__(self, valid: Iterable[str] = (GOOD_TOKEN,), infrastructure_error: bool = False) -> None:
        self.valid = set(valid)
        self.infrastructure_error = infrastructure_error
        self.calls: List[str] = []

    def verify(self, token: str, remote_ip: Optional[str] = None) -> CaptchaResult:
        self.calls.append(token)
        if self.infrastructure_error:
            return CaptchaResult(success=False, error_codes=["provider-timeout"], infrastructure_error=True)
        if token in self.valid:
            return CaptchaResult(success=True)
        return CaptchaResult(success=False, error_codes=["invalid-input-response"])


def make_gate(clock, verifier, captcha_threshold: int = 5, hard_limit: int = 5, **store_kwargs) -> AdmissionGate:
    config = PolicyConfig(
        captcha_threshold=captcha_threshold,
        hard_limit=hard_limit,
        window_seconds=WINDOW,
        site_key=SITE_KEY,
    )
    store = CounterStore(window_seconds=WINDOW, clock=clock, **store_kwargs)
    return AdmissionGate(store=store, config=config, verifier=verifier)


def bearer(user_id: str, role: str = "user") -> dict:
    settings = get_settings()
    token = jwt.encode({"sub": user_id, "role": role}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}
