from __future__ import annotations

import math
import threading
import time
import zlib
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, TypeVar

from tempmail.security.logger import admission_logger as logger

T = TypeVar("T")


@dataclass
class RateLimitRecord:
    identity: str
    count: int = 0
    window_start: float = 0.0
    captcha_required: bool = False

    def copy(self) -> "RateLimitRecord":
        return replace(self)


class _Stripe:
    __slots__ = ("lock", "records")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.records: "OrderedDict[str, RateLimitRecord]" = OrderedDict()


class CounterStore:
    """In-process counters for email creation, one record per identity.

    Identities are spread over a fixed number of stripes; each stripe has its
    own lock and map, so only identities sharing a stripe contend. Every
    stripe is capped at ``ceil(max_entries / stripes)`` records: when a new
    identity arrives at a full stripe, expired windows are swept first and
    then the least recently touched record is evicted.

    All public accessors hand out copies. Use :meth:`apply` to read and
    mutate a record in one atomic step.
    """

    def __init__(
        self,
        window_seconds: float,
        max_entries: int = 10000,
        stripes: int = 16,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._stripes = [_Stripe() for _ in range(stripes)]
        self._per_stripe = max(1, math.ceil(max_entries / stripes))

    def _now(self) -> float:
        return self._clock()

    def _stripe(self, identity: str) -> _Stripe:
        index = zlib.crc32(identity.encode("utf-8")) % len(self._stripes)
        return self._stripes[index]

    def _expired(self, record: RateLimitRecord, now: float) -> bool:
        return now - record.window_start > self.window_seconds

    def _make_room(self, stripe: _Stripe, now: float) -> None:
        # Caller holds stripe.lock.
        stale = [key for key, rec in stripe.records.items() if self._expired(rec, now)]
        for key in stale:
            del stripe.records[key]
        while len(stripe.records) >= self._per_stripe:
            evicted, _ = stripe.records.popitem(last=False)
            logger.info(f"Evicted rate-limit record for {evicted}")

    def _load(self, stripe: _Stripe, identity: str, now: float) -> RateLimitRecord:
        # Caller holds stripe.lock.
        record = stripe.records.get(identity)
        if record is None:
            if len(stripe.records) >= self._per_stripe:
                self._make_room(stripe, now)
            record = RateLimitRecord(identity=identity, window_start=now)
            stripe.records[identity] = record
            return record

        stripe.records.move_to_end(identity)
        if self._expired(record, now):
            if record.count or record.captcha_required:
                logger.info(f"Window rolled over for {identity} (count={record.count})")
            record.count = 0
            record.captcha_required = False
            record.window_start = now
        return record

    def apply(self, identity: str, fn: Callable[[RateLimitRecord], T]) -> T:
        """Run ``fn`` on the live record while its stripe lock is held."""
        stripe = self._stripe(identity)
        with stripe.lock:
            record = self._load(stripe, identity, self._now())
            return fn(record)

    def get_or_create(self, identity: str) -> RateLimitRecord:
        return self.apply(identity, lambda record: record.copy())

    def increment(self, identity: str) -> RateLimitRecord:
        def _increment(record: RateLimitRecord) -> RateLimitRecord:
            record.count += 1
            return record.copy()

        return self.apply(identity, _increment)

    def mark_captcha_required(self, identity: str) -> RateLimitRecord:
        def _mark(record: RateLimitRecord) -> RateLimitRecord:
            record.captcha_required = True
            return record.copy()

        return self.apply(identity, _mark)

    def reset(self, identity: str) -> RateLimitRecord:
        """Zero the count and clear the CAPTCHA flag; the window is kept."""

        def _reset(record: RateLimitRecord) -> RateLimitRecord:
            record.count = 0
            record.captcha_required = False
            return record.copy()

        return self.apply(identity, _reset)

    def peek(self, identity: str) -> Optional[RateLimitRecord]:
        """Return a copy of the stored record without creating or rolling it."""
        stripe = self._stripe(identity)
        with stripe.lock:
            record = stripe.records.get(identity)
            return record.copy() if record is not None else None

    def seconds_until_rollover(self, identity: str) -> int:
        record = self.peek(identity)
        if record is None:
            return 0
        remaining = record.window_start + self.window_seconds - self._now()
        return int(max(0.0, math.ceil(remaining)))

    def snapshot(self) -> List[RateLimitRecord]:
        out: List[RateLimitRecord] = []
        for stripe in self._stripes:
            with stripe.lock:
                out.extend(record.copy() for record in stripe.records.values())
        return out

    def clear(self) -> None:
        for stripe in self._stripes:
            with stripe.lock:
                stripe.records.clear()

    def __len__(self) -> int:
        total = 0
        for stripe in self._stripes:
            with stripe.lock:
                total += len(stripe.records)
        return total


__all__ = ["RateLimitRecord", "CounterStore"]
