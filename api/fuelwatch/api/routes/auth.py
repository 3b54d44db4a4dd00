import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from fuelwatch.core.security import get_human_principal
from fuelwatch.schemas.auth import (
    LoginRequest,
    ProfileOut,
    SessionOut,
    SessionTokenOut,
    SignUpOut,
    SignUpRequest,
)
from fuelwatch.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from fuelwatch.services.supabase_auth import (
    SupabaseAuthError,
    SupabaseAuthUnavailableError,
    get_supabase_auth_client,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/signup", response_model=SignUpOut, status_code=status.HTTP_201_CREATED)
async def sign_up(
    payload: SignUpRequest,
    auth_client=Depends(get_supabase_auth_client),
    repository=Depends(get_repository),
) -> SignUpOut:
    try:
        user = await auth_client.sign_up(
            email=payload.email,
            password=payload.password,
            data={"first_name": payload.first_name, "last_name": payload.last_name},
        )
    except SupabaseAuthError as exc:
        raise HTTPException(status_code=_client_error_status(exc), detail=str(exc)) from exc
    except SupabaseAuthUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    try:
        profile = await repository.create_profile(
            user_id=user["id"],
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("user signed up user_id=%s", user["id"])
    return SignUpOut(user_id=user["id"], email=payload.email, profile=ProfileOut(**profile))


@router.post("/login", response_model=SessionTokenOut)
async def login(
    payload: LoginRequest,
    auth_client=Depends(get_supabase_auth_client),
    repository=Depends(get_repository),
) -> SessionTokenOut:
    try:
        session = await auth_client.sign_in_with_password(email=payload.email, password=payload.password)
    except SupabaseAuthError as exc:
        raise HTTPException(status_code=_client_error_status(exc), detail=str(exc)) from exc
    except SupabaseAuthUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    user = session["user"]
    try:
        profile = await repository.get_profile(user_id=str(user.get("id", "")))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="profile not found")

    return SessionTokenOut(
        access_token=session["access_token"],
        token_type=session.get("token_type") or "bearer",
        expires_in=session.get("expires_in"),
        refresh_token=session.get("refresh_token"),
        user=user,
        profile=ProfileOut(**profile),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    principal=Depends(get_human_principal),
    auth_client=Depends(get_supabase_auth_client),
) -> Response:
    try:
        await auth_client.sign_out(access_token=principal.access_token or "")
    except SupabaseAuthError as exc:
        raise HTTPException(status_code=_client_error_status(exc), detail=str(exc)) from exc
    except SupabaseAuthUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/session", response_model=SessionOut)
async def get_session(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SessionOut:
    try:
        profile = await repository.get_profile(user_id=principal.subject)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SessionOut(
        user_id=principal.subject,
        email=principal.email,
        role=principal.role or "user",
        scopes=sorted(principal.scopes),
        is_admin=principal.is_admin,
        profile=ProfileOut(**profile) if profile else None,
    )


def _client_error_status(exc: SupabaseAuthError) -> int:
    if exc.status_code in {400, 401, 403, 422, 429}:
        return exc.status_code
    return status.HTTP_400_BAD_REQUEST
