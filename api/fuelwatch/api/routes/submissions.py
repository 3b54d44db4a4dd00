from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from fuelwatch.core.security import get_optional_human_principal
from fuelwatch.schemas.submissions import SubmissionCreateRequest, SubmissionOut
from fuelwatch.services.events import get_event_broker
from fuelwatch.services.notifier import get_notifier
from fuelwatch.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.post("", response_model=SubmissionOut, status_code=status.HTTP_201_CREATED)
async def create_submission(
    payload: SubmissionCreateRequest,
    background_tasks: BackgroundTasks,
    principal=Depends(get_optional_human_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
    notifier=Depends(get_notifier),
) -> SubmissionOut:
    submitted_by = payload.email or (principal.email if principal is not None else None) or "anonymous"

    try:
        row = await repository.create_submission(
            queue="web",
            station_name=payload.station_name,
            station_location=payload.station_location,
            petrol_price=payload.petrol_price,
            diesel_price=payload.diesel_price,
            kerosene_price=payload.kerosene_price,
            submitted_by=submitted_by,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    broker.publish("submission_created", {"queue": "web", "submission_id": row["id"]})
    background_tasks.add_task(notifier.notify_new_submission, row)
    return SubmissionOut(**row)
