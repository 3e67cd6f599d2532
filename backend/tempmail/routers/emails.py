import hmac
import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tempmail.core.settings import get_settings
from tempmail.db import get_db
from tempmail.db_models import ReceivedEmail, TempEmail
from tempmail.models import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CreateEmailRequest,
    MessageResponse,
    Page,
    PageMetadata,
    ReceivedEmailOut,
    TempEmailOut,
)
from tempmail.rate_limit import PUBLIC_INBOX, limiter
from tempmail.security import User, get_current_user
from tempmail.security.admission import AdmissionGate, get_admission_gate
from tempmail.security.identity import client_ip, resolve_identity
from tempmail.security.logger import emails_logger as logger

router = APIRouter(prefix="/emails", tags=["emails"])


# ---------------- Helpers ----------------
def _utcnow() -> datetime:
    # The DateTime columns hold naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _metadata(total: int, page: int, limit: int) -> PageMetadata:
    return PageMetadata(total=total, page=page, limit=limit, pages=math.ceil(total / limit))


def _received_out(row: Tuple[ReceivedEmail, str]) -> ReceivedEmailOut:
    received, address = row
    return ReceivedEmailOut(
        id=received.id,
        temp_email_id=received.temp_email_id,
        temp_email=address,
        from_email=received.from_email,
        subject=received.subject,
        body=received.body,
        received_at=received.received_at,
    )


def _owned_temp_email(db: Session, temp_email_id: str, user: User) -> Optional[TempEmail]:
    stmt = select(TempEmail).where(TempEmail.id == temp_email_id, TempEmail.user_id == user.id)
    return db.execute(stmt).scalars().first()


def _store_temp_email(db: Session, payload: CreateEmailRequest, owner_id: Optional[str], expires_at: datetime) -> TempEmail:
    temp_email = TempEmail(
        user_id=owner_id,
        email=str(payload.email),
        domain_id=payload.domain_id,
        expires_at=expires_at,
    )
    try:
        db.add(temp_email)
        db.commit()
        db.refresh(temp_email)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Create email error")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to create temporary email")
    return temp_email


# ---------------- Protected creation ----------------
@router.post("/create", response_model=TempEmailOut)
def create_email(
    request: Request,
    payload: CreateEmailRequest,
    user: User = Depends(get_current_user),
    gate: AdmissionGate = Depends(get_admission_gate),
    db: Session = Depends(get_db),
):
    settings = get_settings()
    ip = client_ip(request, settings.trust_forwarded_for)
    identity = resolve_identity(ip, user.id)

    decision = gate.admit(identity, payload.captcha_response, remote_ip=ip)
    denied = gate.denial_response(identity, decision)
    if denied is not None:
        return denied

    expires_at = _utcnow() + timedelta(days=settings.user_email_ttl_days)
    return _store_temp_email(db, payload, user.id, expires_at)


@router.post("/public/create", response_model=TempEmailOut)
def create_public_email(
    request: Request,
    payload: CreateEmailRequest,
    gate: AdmissionGate = Depends(get_admission_gate),
    db: Session = Depends(get_db),
):
    settings = get_settings()
    ip = client_ip(request, settings.trust_forwarded_for)
    identity = resolve_identity(ip)

    decision = gate.admit(identity, payload.captcha_response, remote_ip=ip)
    denied = gate.denial_response(identity, decision)
    if denied is not None:
        return denied

    expires_at = _utcnow() + timedelta(hours=settings.public_email_ttl_hours)
    return _store_temp_email(db, payload, None, expires_at)


# ---------------- Public inbox ----------------
@router.get("/public/{address}", response_model=List[ReceivedEmailOut])
@limiter.limit(PUBLIC_INBOX)
def public_inbox(request: Request, response: Response, address: str, db: Session = Depends(get_db)):
    response.headers["Cache-Control"] = "public, max-age=5"
    stmt = (
        select(ReceivedEmail, TempEmail.email)
        .join(TempEmail, ReceivedEmail.temp_email_id == TempEmail.id)
        .where(TempEmail.email == address)
        .order_by(ReceivedEmail.received_at.desc(), ReceivedEmail.id.desc())
    )
    return [_received_out(row) for row in db.execute(stmt).all()]


# ---------------- Admin listing (passphrase) ----------------
@router.get("/admin/all", response_model=Page[ReceivedEmailOut])
def admin_all_received(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    admin_access: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    expected = get_settings().admin_passphrase
    if not expected or not admin_access or not hmac.compare_digest(admin_access.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")

    total = db.execute(select(func.count()).select_from(ReceivedEmail)).scalar_one()
    stmt = (
        select(ReceivedEmail, TempEmail.email)
        .join(TempEmail, ReceivedEmail.temp_email_id == TempEmail.id)
        .order_by(ReceivedEmail.received_at.desc(), ReceivedEmail.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    rows = [_received_out(row) for row in db.execute(stmt).all()]
    return Page[ReceivedEmailOut](data=rows, metadata=_metadata(total, page, limit))


# ---------------- Owner routes ----------------
@router.get("", response_model=Page[TempEmailOut])
def list_emails(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conditions = [TempEmail.user_id == user.id]
    if search:
        conditions.append(TempEmail.email.contains(search))

    total = db.execute(select(func.count()).select_from(TempEmail).where(*conditions)).scalar_one()
    stmt = (
        select(TempEmail)
        .where(*conditions)
        .order_by(TempEmail.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    emails = [TempEmailOut.model_validate(e) for e in db.execute(stmt).scalars().all()]
    return Page[TempEmailOut](data=emails, metadata=_metadata(total, page, limit))


@router.get("/{temp_email_id}", response_model=TempEmailOut)
def get_email(temp_email_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    temp_email = _owned_temp_email(db, temp_email_id, user)
    if temp_email is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")
    return temp_email


@router.get("/{temp_email_id}/received", response_model=Page[ReceivedEmailOut])
def list_received(
    temp_email_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conditions = [TempEmail.id == temp_email_id, TempEmail.user_id == user.id]
    total = db.execute(
        select(func.count())
        .select_from(ReceivedEmail)
        .join(TempEmail, ReceivedEmail.temp_email_id == TempEmail.id)
        .where(*conditions)
    ).scalar_one()
    stmt = (
        select(ReceivedEmail, TempEmail.email)
        .join(TempEmail, ReceivedEmail.temp_email_id == TempEmail.id)
        .where(*conditions)
        .order_by(ReceivedEmail.received_at.desc(), ReceivedEmail.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    rows = [_received_out(row) for row in db.execute(stmt).all()]
    return Page[ReceivedEmailOut](data=rows, metadata=_metadata(total, page, limit))


@router.delete("/delete/{temp_email_id}", response_model=MessageResponse)
def delete_email(temp_email_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    temp_email = _owned_temp_email(db, temp_email_id, user)
    if temp_email is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")
    try:
        db.execute(delete(ReceivedEmail).where(ReceivedEmail.temp_email_id == temp_email_id))
        db.delete(temp_email)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Delete email error")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to delete email")
    return MessageResponse(message="Email deleted successfully")


@router.delete("/{temp_email_id}/received/{email_id}", response_model=MessageResponse)
def delete_received(
    temp_email_id: str,
    email_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if _owned_temp_email(db, temp_email_id, user) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Temporary email not found")
    result = db.execute(
        delete(ReceivedEmail).where(ReceivedEmail.id == email_id, ReceivedEmail.temp_email_id == temp_email_id)
    )
    if result.rowcount == 0:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Received email not found")
    db.commit()
    return MessageResponse(message="Email deleted successfully")


@router.post("/{temp_email_id}/received/bulk/delete", response_model=BulkDeleteResponse)
def bulk_delete_received(
    temp_email_id: str,
    payload: BulkDeleteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if _owned_temp_email(db, temp_email_id, user) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Temporary email not found")
    result = db.execute(
        delete(ReceivedEmail).where(
            ReceivedEmail.id.in_(payload.email_ids),
            ReceivedEmail.temp_email_id == temp_email_id,
        )
    )
    db.commit()
    return BulkDeleteResponse(message="Emails deleted successfully", count=result.rowcount)
