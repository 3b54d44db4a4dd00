import logging

from fastapi import APIRouter, Depends, HTTPException, status

from fuelwatch.core.security import get_machine_principal
from fuelwatch.schemas.sync import FormSubmissionBatchRequest, FormSyncBatchOut, FormSyncHighWaterMarkOut
from fuelwatch.services.events import get_event_broker
from fuelwatch.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/form/high-water-mark", response_model=FormSyncHighWaterMarkOut)
async def get_form_high_water_mark(
    principal=Depends(get_machine_principal),
    repository=Depends(get_repository),
) -> FormSyncHighWaterMarkOut:
    try:
        principal.require_scopes({"sync:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        submitted_at = await repository.get_form_high_water_mark()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return FormSyncHighWaterMarkOut(submitted_at=submitted_at)


@router.post("/form/submissions", response_model=FormSyncBatchOut)
async def push_form_submissions(
    payload: FormSubmissionBatchRequest,
    principal=Depends(get_machine_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
) -> FormSyncBatchOut:
    try:
        principal.require_scopes({"sync:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    rows = [item.model_dump() for item in payload.submissions]
    try:
        inserted_count = await repository.insert_form_submissions(rows)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info(
        "form submissions synced module=%s received=%s inserted=%s",
        principal.subject,
        len(rows),
        inserted_count,
    )
    if inserted_count:
        broker.publish("submission_created", {"queue": "form", "count": inserted_count})
    return FormSyncBatchOut(received_count=len(rows), inserted_count=inserted_count)
