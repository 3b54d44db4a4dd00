from typing import Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from fuelwatch.core.security import get_human_principal
from fuelwatch.schemas.submissions import (
    SubmissionOut,
    SubmissionQueue,
    SubmissionReviewOut,
    SubmissionReviewRequest,
    SubmissionStatus,
)
from fuelwatch.services.events import get_event_broker
from fuelwatch.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.get("/{queue}", response_model=list[SubmissionOut])
async def list_submissions(
    queue: SubmissionQueue,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    status_filter: SubmissionStatus | Literal["all"] = Query(default="pending", alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[SubmissionOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_submissions(
            queue=queue,
            status=None if status_filter == "all" else status_filter,
            limit=limit,
            offset=offset,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [SubmissionOut(**row) for row in rows]


@router.post("/{queue}/{submission_id}/approve", response_model=SubmissionReviewOut)
async def approve_submission(
    queue: SubmissionQueue,
    submission_id: str,
    payload: SubmissionReviewRequest | None = Body(default=None),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
) -> SubmissionReviewOut:
    return await _review(
        "approve",
        queue=queue,
        submission_id=submission_id,
        payload=payload,
        principal=principal,
        repository=repository,
        broker=broker,
    )


@router.post("/{queue}/{submission_id}/reject", response_model=SubmissionReviewOut)
async def reject_submission(
    queue: SubmissionQueue,
    submission_id: str,
    payload: SubmissionReviewRequest | None = Body(default=None),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    broker=Depends(get_event_broker),
) -> SubmissionReviewOut:
    return await _review(
        "reject",
        queue=queue,
        submission_id=submission_id,
        payload=payload,
        principal=principal,
        repository=repository,
        broker=broker,
    )


async def _review(
    action: str,
    *,
    queue: str,
    submission_id: str,
    payload: SubmissionReviewRequest | None,
    principal,
    repository,
    broker,
) -> SubmissionReviewOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="moderator identity is required")

    review = repository.approve_submission if action == "approve" else repository.reject_submission
    try:
        result = await review(
            queue=queue,
            submission_id=submission_id,
            actor_user_id=principal.actor_id,
            reason=payload.reason if payload else None,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    submission = result["submission"]
    broker.publish(
        "submission_reviewed",
        {
            "queue": queue,
            "submission_id": submission["id"],
            "status": submission["status"],
            "station_id": result.get("station_id"),
            "actor_id": principal.actor_id,
        },
    )
    return SubmissionReviewOut(**result)
