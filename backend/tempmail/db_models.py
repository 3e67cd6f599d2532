from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tempmail.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class TempEmail(Base):
    __tablename__ = "temp_emails"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # NULL for addresses created through the public endpoint.
    user_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    email: Mapped[str] = mapped_column(String(320), index=True)
    domain_id: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime)

    received: Mapped[List["ReceivedEmail"]] = relationship(back_populates="temp_email")


class ReceivedEmail(Base):
    __tablename__ = "received_emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    temp_email_id: Mapped[str] = mapped_column(ForeignKey("temp_emails.id"), index=True)
    from_email: Mapped[str] = mapped_column(String(320))
    subject: Mapped[str] = mapped_column(String(998), default="")
    body: Mapped[str] = mapped_column(Text, default="")
    received_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    temp_email: Mapped[TempEmail] = relationship(back_populates="received")
