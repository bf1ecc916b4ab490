from fastapi import APIRouter, Depends

from api.models import ThemeRequest, ThemeResponse
from api.runtime import ClientRuntime, get_runtime

router = APIRouter()


@router.get("/settings/theme", response_model=ThemeResponse, summary="Theme preference")
async def get_theme(runtime: ClientRuntime = Depends(get_runtime)) -> ThemeResponse:
    return ThemeResponse(mode=runtime.theme.mode)


@router.post("/settings/theme", response_model=ThemeResponse, summary="Set theme preference")
async def set_theme(request: ThemeRequest, runtime: ClientRuntime = Depends(get_runtime)) -> ThemeResponse:
    """Persisted on the device; available before sign-in."""
    return ThemeResponse(mode=await runtime.theme.set(request.mode))
