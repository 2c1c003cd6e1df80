from typing import Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, AnyHttpUrl, Field


class BusinessCreate(BaseModel):
    name: str = Field(min_length=1)
    webhook_url: Optional[AnyHttpUrl] = None
    webhook_secret: Optional[str] = None

class BusinessOut(BaseModel):
    id: UUID
    name: str
    webhook_url: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class WebhookSettingsIn(BaseModel):
    webhook_url: AnyHttpUrl
    webhook_secret: Optional[str] = None

class WebhookSettingsOut(BaseModel):
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None

    class Config:
        from_attributes = True

class WebhookTestOut(BaseModel):
    success: bool
    status_code: Optional[int] = Field(default=None, serialization_alias="statusCode")
    response_body: str = Field(default="", serialization_alias="responseBody")

    class Config:
        from_attributes = True

class SurveyResponseIn(BaseModel):
    business_id: UUID
    survey_id: str = Field(min_length=1, max_length=255)
    subject_id: str = Field(min_length=1, max_length=255)
    score: int = Field(ge=0, le=10)
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

class EnqueueOut(BaseModel):
    queued: bool
    delivery_id: Optional[UUID] = None

class CommentIn(BaseModel):
    comment: str = Field(min_length=1)

class CommentOut(BaseModel):
    updated: bool

class DeliveryOut(BaseModel):
    id: UUID
    business_id: UUID
    survey_id: str
    subject_id: str
    score: int
    comment: Optional[str] = None
    status: str
    attempts: int
    created_at: datetime
    next_attempt_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    response_status_code: Optional[int] = None
    response_body: Optional[str] = None

    class Config:
        from_attributes = True
