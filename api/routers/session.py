from fastapi import APIRouter, Depends, Response, status
import structlog

from api.models import (
    PasswordChangeRequest,
    ProfileUpdateRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
)
from api.runtime import ClientRuntime, get_current_user, get_runtime
from linkup.models.session import User

router = APIRouter()
logger = structlog.get_logger(__name__)


def _session(runtime: ClientRuntime) -> SessionResponse:
    return SessionResponse(tree=runtime.gate.tree, user=runtime.gate.current_user())


@router.get("/session", response_model=SessionResponse, summary="Current session")
async def get_session(runtime: ClientRuntime = Depends(get_runtime)) -> SessionResponse:
    """Which screen tree to show: authenticated or unauthenticated."""
    return _session(runtime)


@router.post("/session/sign-in", response_model=SessionResponse, summary="Sign in with email and password")
async def sign_in(request: SignInRequest, runtime: ClientRuntime = Depends(get_runtime)) -> SessionResponse:
    await runtime.sign_in(request.email, request.password)
    return _session(runtime)


@router.post(
    "/session/sign-up",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def sign_up(request: SignUpRequest, runtime: ClientRuntime = Depends(get_runtime)) -> SessionResponse:
    """
    Create the auth account and its ``users/{email}`` profile, then sign in.

    The auth account is rolled back if the profile cannot be written.
    """
    await runtime.sign_up(request.email, request.password, request.display_name)
    return _session(runtime)


@router.post("/session/sign-out", response_model=SessionResponse, summary="Sign out")
async def sign_out(runtime: ClientRuntime = Depends(get_runtime)) -> SessionResponse:
    await runtime.sign_out()
    return _session(runtime)


@router.post("/session/password", status_code=status.HTTP_204_NO_CONTENT, summary="Change password")
async def change_password(
    request: PasswordChangeRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> Response:
    await runtime.gate.change_password(request.current_password, request.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/session/account", response_model=SessionResponse, summary="Delete the signed-in account")
async def delete_account(
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> SessionResponse:
    await runtime.delete_account()
    logger.info("Account removed via API", email=current_user.email)
    return _session(runtime)


@router.patch("/session/profile", response_model=SessionResponse, summary="Update display name")
async def update_profile(
    request: ProfileUpdateRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> SessionResponse:
    await runtime.update_display_name(request.display_name)
    return _session(runtime)
