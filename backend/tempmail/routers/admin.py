from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tempmail.models import RateLimitRecordOut, ResetRateLimitRequest
from tempmail.security import User, require_role
from tempmail.security.admission import AdmissionGate, get_admission_gate
from tempmail.security.counters import RateLimitRecord
from tempmail.security.logger import admission_logger as logger

router = APIRouter(prefix="/admin", tags=["admin"])


def _record_out(record: RateLimitRecord) -> RateLimitRecordOut:
    return RateLimitRecordOut(
        identity=record.identity,
        count=record.count,
        window_start=datetime.fromtimestamp(record.window_start, tz=timezone.utc),
        captcha_required=record.captcha_required,
    )


@router.get("/rate-limits", response_model=List[RateLimitRecordOut])
def list_rate_limits(
    flagged: Optional[bool] = Query(None),
    user: User = Depends(require_role("admin")),
    gate: AdmissionGate = Depends(get_admission_gate),
):
    records = gate.store.snapshot()
    if flagged is not None:
        records = [r for r in records if r.captcha_required == flagged]
    records.sort(key=lambda r: (r.count, r.identity), reverse=True)
    return [_record_out(r) for r in records]


@router.post("/rate-limits/reset", response_model=RateLimitRecordOut)
def reset_rate_limit(
    payload: ResetRateLimitRequest,
    user: User = Depends(require_role("admin")),
    gate: AdmissionGate = Depends(get_admission_gate),
):
    if gate.store.peek(payload.identity) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="identity_not_tracked")
    record = gate.store.reset(payload.identity)
    logger.info(f"Rate limit for {payload.identity} reset by admin {user.id}")
    return _record_out(record)
