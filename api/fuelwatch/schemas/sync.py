from datetime import datetime

from pydantic import BaseModel, Field

FORM_SYNC_MAX_BATCH = 1000


class FormSubmissionIn(BaseModel):
    station_name: str = Field(min_length=1)
    station_location: str = Field(min_length=1)
    petrol_price: float | None = Field(default=None, gt=0)
    diesel_price: float | None = Field(default=None, gt=0)
    kerosene_price: float | None = Field(default=None, gt=0)
    submitted_by: str = "anonymous"
    submitted_at: datetime


class FormSubmissionBatchRequest(BaseModel):
    submissions: list[FormSubmissionIn] = Field(default_factory=list, max_length=FORM_SYNC_MAX_BATCH)


class FormSyncHighWaterMarkOut(BaseModel):
    submitted_at: datetime | None = None


class FormSyncBatchOut(BaseModel):
    received_count: int
    inserted_count: int
