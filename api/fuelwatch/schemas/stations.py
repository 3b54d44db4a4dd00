from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

StationSortBy = Literal["station_name", "station_location", "petrol", "diesel", "kerosene", "last_updated"]
SortDir = Literal["asc", "desc"]


class MergedStationOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    station_id: str | None = None
    station_name: str
    station_location: str
    petrol_price: float | None = Field(default=None, alias="petrolPrice")
    diesel_price: float | None = Field(default=None, alias="dieselPrice")
    kerosene_price: float | None = Field(default=None, alias="kerosenePrice")
    station_count: int = Field(default=0, alias="stationCount")
    last_updated: datetime | None = None


class LocationSummaryOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    station_location: str
    slug: str
    station_count: int = Field(alias="stationCount")


class LocationDetailOut(LocationSummaryOut):
    stations: list[MergedStationOut] = Field(default_factory=list)


class StationPricesPatchRequest(BaseModel):
    petrol_price: float | None = Field(default=None, gt=0)
    diesel_price: float | None = Field(default=None, gt=0)
    kerosene_price: float | None = Field(default=None, gt=0)


class StationPricesUpdateOut(BaseModel):
    station_id: str
    updated: dict[str, int] = Field(default_factory=dict)
    inserted: dict[str, int] = Field(default_factory=dict)


class StationDeleteOut(BaseModel):
    station_id: str
    deleted: dict[str, int] = Field(default_factory=dict)
