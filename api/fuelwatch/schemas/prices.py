from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from fuelwatch.core.slugs import normalize_station_text

FuelType = Literal["petrol", "diesel", "kerosene"]


class PriceRecordOut(BaseModel):
    id: int
    station_id: str | None = None
    station_name: str
    station_location: str
    price: float | None = None
    tags: list[str] = Field(default_factory=list)
    last_updated: datetime | None = None
    effective_date: date | None = None


class PriceEntryCreateRequest(BaseModel):
    station_name: str = Field(min_length=1)
    station_location: str = Field(min_length=1)
    price: float | None = Field(default=None, gt=0)
    effective_date: date = Field(default_factory=date.today)
    tags: list[str] = Field(default_factory=list)

    @field_validator("station_name", "station_location")
    @classmethod
    def _normalize_station_text(cls, value: str) -> str:
        normalized = normalize_station_text(value)
        if not normalized:
            raise ValueError("must be a non-empty string")
        return normalized
