from fastapi import APIRouter, Depends, HTTPException, Query, status

from fuelwatch.core.security import get_human_principal
from fuelwatch.schemas.prices import FuelType, PriceEntryCreateRequest, PriceRecordOut
from fuelwatch.schemas.stations import SortDir
from fuelwatch.services.events import get_event_broker
from fuelwatch.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.get("/{fuel_type}", response_model=list[PriceRecordOut])
async def list_prices(
    fuel_type: FuelType,
    repository=Depends(get_repository),
    sort_dir: SortDir = Query(default="asc"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[PriceRecordOut]:
    try:
        rows = await repository.list_price_records(fuel_type)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    priced = [row for row in rows if row.get("price") is not None]
    unpriced = [row for row in rows if row.get("price") is None]
    priced.sort(key=lambda row: row["price"], reverse=sort_dir == "desc")
    ordered = priced + unpriced
    return [PriceRecordOut(**row) for row in ordered[offset : offset + limit]]


@router.post("/{fuel_type}", response_model=PriceRecordOut, status_code=status.HTTP_201_CREATED)
async def create_price_entry(
    fuel_type: FuelType,
    payload: PriceEntryCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
) -> PriceRecordOut:
    try:
        principal.require_scopes({"prices:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.create_price_entry(
            fuel_type=fuel_type,
            station_name=payload.station_name,
            station_location=payload.station_location,
            price=payload.price,
            effective_date=payload.effective_date,
            tags=payload.tags,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    broker.publish("price_inserted", {"fuel_type": fuel_type, "record": row, "actor_id": principal.actor_id})
    return PriceRecordOut(**row)
