from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SmsQueueItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sms_id: int
    message_id: int
    phone: str
    communication_id: int | None = None
    status: str
    forced: bool
    created_at: datetime | None = None
    attempts: int = 0
    first_sent_at: datetime | None = None
    reason: str | None = None


class SmsQueueList(BaseModel):
    items: list[SmsQueueItem]
    total: int
    limit: int
    offset: int


class EnqueueRequest(BaseModel):
    message_id: int
    phones: list[str] = Field(min_length=1)
    communication_id: int | None = None
    forced: bool = False


class EnqueueResponse(BaseModel):
    sms_ids: list[int]
    blocked_phones: list[str]
    invalid_phones: list[str]


class DeleteResult(BaseModel):
    deleted: int


class EngineState(BaseModel):
    active: dict[str, bool]
    pending: int
    awaiting: int
