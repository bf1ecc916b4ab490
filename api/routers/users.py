from fastapi import APIRouter, Depends, Query, status
import structlog

from api.models import AddContactRequest, ChatCreatedResponse, UserResponse
from api.runtime import ClientRuntime, get_current_user, get_runtime
from linkup.models.session import User

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/users", response_model=list[UserResponse], summary="List users")
async def list_users(
    q: str | None = Query(None, description="Filter on name or email."),
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> list[UserResponse]:
    """Everyone the user can start a chat with, ordered by name. The caller is labelled "(You)"."""
    directory = runtime.directory
    users = await directory.search_users(q) if q else await directory.list_users()
    return [
        UserResponse(email=u.email, name=u.name, about=u.about, label=directory.label_for(u))
        for u in users
    ]


@router.post(
    "/users",
    response_model=ChatCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a contact",
)
async def add_contact(
    request: AddContactRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ChatCreatedResponse:
    """Register a contact by name and email and open a chat with them."""
    chat_id = await runtime.directory.add_contact(request.name, request.email)
    return ChatCreatedResponse(chat_id=chat_id)
