from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field

T = TypeVar("T")


class CreateEmailRequest(BaseModel):
    email: EmailStr
    domain_id: int = Field(alias="domainId")
    captcha_response: Optional[str] = Field(default=None, alias="captchaResponse")

    model_config = ConfigDict(populate_by_name=True)


class TempEmailOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    email: str
    domain_id: int
    created_at: Optional[datetime] = None
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReceivedEmailOut(BaseModel):
    id: int
    temp_email_id: str
    temp_email: str
    from_email: str
    subject: str
    body: str
    received_at: Optional[datetime] = None


class PageMetadata(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    metadata: PageMetadata


class BulkDeleteRequest(BaseModel):
    email_ids: List[int] = Field(alias="emailIds", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class BulkDeleteResponse(BaseModel):
    message: str
    count: int


class MessageResponse(BaseModel):
    message: str


class RateLimitRecordOut(BaseModel):
    identity: str
    count: int
    window_start: datetime = Field(serialization_alias="windowStart")
    captcha_required: bool = Field(serialization_alias="captchaRequired")


class ResetRateLimitRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=512)
