from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from fuelwatch.core.slugs import normalize_station_text

SubmissionQueue = Literal["web", "form"]
SubmissionStatus = Literal["pending", "approved", "rejected"]


class SubmissionCreateRequest(BaseModel):
    station_name: str = Field(min_length=1)
    station_location: str = Field(min_length=1)
    petrol_price: float | None = Field(default=None, gt=0)
    diesel_price: float | None = Field(default=None, gt=0)
    kerosene_price: float | None = Field(default=None, gt=0)
    email: str | None = Field(default=None, max_length=320)

    @field_validator("station_name", "station_location")
    @classmethod
    def _normalize_station_text(cls, value: str) -> str:
        normalized = normalize_station_text(value)
        if not normalized:
            raise ValueError("must be a non-empty string")
        return normalized

    @field_validator("email")
    @classmethod
    def _blank_email_is_anonymous(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if stripped and "@" not in stripped:
            raise ValueError("email must contain @")
        return stripped or None

    @model_validator(mode="after")
    def _require_a_price(self) -> "SubmissionCreateRequest":
        if self.petrol_price is None and self.diesel_price is None and self.kerosene_price is None:
            raise ValueError("provide at least one fuel price")
        return self


class SubmissionOut(BaseModel):
    id: str
    queue: SubmissionQueue
    station_name: str
    station_location: str
    petrol_price: float | None = None
    diesel_price: float | None = None
    kerosene_price: float | None = None
    submitted_by: str
    status: SubmissionStatus
    submitted_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    review_reason: str | None = None


class SubmissionReviewRequest(BaseModel):
    reason: str | None = None


class SubmissionReviewOut(BaseModel):
    submission: SubmissionOut
    station_id: str | None = None
    inserted_price_ids: dict[str, int] = Field(default_factory=dict)
