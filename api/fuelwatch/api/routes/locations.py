from fastapi import APIRouter, Depends, HTTPException, Query, status

from fuelwatch.schemas.stations import LocationDetailOut, LocationSummaryOut
from fuelwatch.services.merge import filter_stations, find_location, group_by_location, merge_stations
from fuelwatch.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


async def _load_stations(repository, *, require_petrol: bool):
    try:
        tables = await repository.fetch_price_tables()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return merge_stations(
        tables.get("petrol"),
        tables.get("diesel"),
        tables.get("kerosene"),
        require_petrol=require_petrol,
    )


@router.get("", response_model=list[LocationSummaryOut])
async def list_locations(
    repository=Depends(get_repository),
    q: str | None = Query(default=None, min_length=1),
    require_petrol: bool = Query(default=False),
) -> list[LocationSummaryOut]:
    stations = await _load_stations(repository, require_petrol=require_petrol)
    groups = group_by_location(filter_stations(stations, q))
    return [LocationSummaryOut.model_validate(group) for group in groups]


@router.get("/{slug}", response_model=LocationDetailOut)
async def get_location(
    slug: str,
    repository=Depends(get_repository),
    require_petrol: bool = Query(default=False),
) -> LocationDetailOut:
    stations = await _load_stations(repository, require_petrol=require_petrol)
    group = find_location(group_by_location(stations), slug)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="location not found")
    return LocationDetailOut.model_validate(group)
