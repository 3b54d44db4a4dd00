from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from fuelwatch.core.config import Settings, get_settings
from fuelwatch.core.security import get_human_principal
from fuelwatch.schemas.stations import (
    MergedStationOut,
    SortDir,
    StationDeleteOut,
    StationPricesPatchRequest,
    StationPricesUpdateOut,
    StationSortBy,
)
from fuelwatch.services.events import get_event_broker
from fuelwatch.services.merge import filter_stations, merge_stations, sort_stations
from fuelwatch.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.get("", response_model=list[MergedStationOut])
async def list_stations(
    response: Response,
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    q: str | None = Query(default=None, min_length=1),
    sort_by: StationSortBy | None = Query(default=None),
    sort_dir: SortDir = Query(default="asc"),
    require_petrol: bool = Query(default=False),
    limit: int | None = Query(default=None, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[MergedStationOut]:
    try:
        tables = await repository.fetch_price_tables()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    stations = merge_stations(
        tables.get("petrol"),
        tables.get("diesel"),
        tables.get("kerosene"),
        require_petrol=require_petrol,
    )
    stations = filter_stations(stations, q)
    if sort_by is not None:
        stations = sort_stations(stations, sort_by=sort_by, sort_dir=sort_dir)

    page_size = limit or settings.default_page_size
    response.headers["X-Total-Count"] = str(len(stations))
    return [MergedStationOut.model_validate(station) for station in stations[offset : offset + page_size]]


@router.get("/{station_id}", response_model=MergedStationOut)
async def get_station(station_id: str, repository=Depends(get_repository)) -> MergedStationOut:
    try:
        tables = await repository.fetch_price_tables()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    stations = merge_stations(tables.get("petrol"), tables.get("diesel"), tables.get("kerosene"))
    match = next((station for station in stations if station.station_id == station_id), None)
    if match is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="station not found")
    return MergedStationOut.model_validate(match)


@router.put("/{station_id}/prices", response_model=StationPricesUpdateOut)
async def update_station_prices(
    station_id: str,
    payload: StationPricesPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
) -> StationPricesUpdateOut:
    try:
        principal.require_scopes({"prices:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await repository.update_station_prices(
            station_id=station_id,
            prices={
                "petrol": payload.petrol_price,
                "diesel": payload.diesel_price,
                "kerosene": payload.kerosene_price,
            },
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    broker.publish("prices_updated", {**result, "actor_id": principal.actor_id})
    return StationPricesUpdateOut(**result)


@router.delete("/{station_id}", response_model=StationDeleteOut)
async def delete_station(
    station_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
) -> StationDeleteOut:
    try:
        principal.require_scopes({"prices:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await repository.delete_station(station_id=station_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    broker.publish("station_deleted", {**result, "actor_id": principal.actor_id})
    return StationDeleteOut(**result)
