from fastapi import APIRouter, Depends, Query, status
import structlog

from api.models import (
    BadgeResponse,
    ChatCreatedResponse,
    ChatInfoResponse,
    ChatListResponse,
    DeleteChatsRequest,
    DeleteChatsResponse,
    DirectChatRequest,
    GroupChatRequest,
    LeaveChatResponse,
    MemberResponse,
)
from api.runtime import ClientRuntime, get_current_user, get_runtime
from linkup.chats.summaries import chat_display_name
from linkup.common.errors import NotFoundError, require_fields, validate_email
from linkup.firestore.users import get_user_profile
from linkup.models.firestore import GroupChat, UserProfile
from linkup.models.session import User

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _profile_for(runtime: ClientRuntime, email: str) -> UserProfile:
    profile = await get_user_profile(runtime.context.require_store(), email)
    if profile is None:
        raise NotFoundError(f"No user with email {email}")
    return profile


@router.get("/chats", response_model=ChatListResponse, summary="List chats")
async def list_chats(
    q: str | None = Query(None, description="Case-insensitive filter on chat names."),
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ChatListResponse:
    """
    Chats with at least one message, most recently updated first.

    Filtering runs over the already synced list and never re-queries.
    """
    chat_list = runtime.chat_list
    await chat_list.wait_idle()
    return ChatListResponse(
        chats=chat_list.search(q) if q else chat_list.summaries,
        badge=chat_list.badge,
        loading=chat_list.loading,
        error=chat_list.error.message if chat_list.error else None,
    )


@router.get("/chats/badge", response_model=BadgeResponse, summary="Unread badge")
async def get_badge(
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> BadgeResponse:
    await runtime.chat_list.wait_idle()
    return BadgeResponse(badge=runtime.chat_list.badge)


@router.post("/chats/direct", response_model=ChatCreatedResponse, summary="Open a 1:1 chat")
async def open_direct_chat(
    request: DirectChatRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ChatCreatedResponse:
    """Return the existing chat with this user, creating it if needed."""
    require_fields(email=request.email)
    profile = await _profile_for(runtime, validate_email(request.email))
    chat_id = await runtime.directory.open_direct_chat(profile)
    return ChatCreatedResponse(chat_id=chat_id)


@router.post(
    "/chats/group",
    response_model=ChatCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a group chat",
)
async def create_group(
    request: GroupChatRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ChatCreatedResponse:
    members = [await _profile_for(runtime, email) for email in request.member_emails]
    chat_id = await runtime.directory.create_group(request.group_name, members)
    return ChatCreatedResponse(chat_id=chat_id)


@router.post("/chats/delete", response_model=DeleteChatsResponse, summary="Delete chats")
async def delete_chats(
    request: DeleteChatsRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> DeleteChatsResponse:
    """
    Remove the user from each chat; chats nobody is left in are deleted.

    Mirrors selecting chats on the list screen and pressing delete.
    """
    chat_list = runtime.chat_list
    chat_list.clear_selection()
    for chat_id in request.chat_ids:
        if chat_id not in chat_list.selected:
            chat_list.toggle_selection(chat_id)
    deleted = await chat_list.delete_selected()
    logger.info("Chats deleted via API", count=len(request.chat_ids), hard_deleted=len(deleted))
    return DeleteChatsResponse(deleted=deleted)


@router.post("/chats/{chat_id}/leave", response_model=LeaveChatResponse, summary="Leave a chat")
async def leave_chat(
    chat_id: str,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> LeaveChatResponse:
    deleted = await runtime.chat_list.leave_chat(chat_id)
    if chat_id in runtime.conversations:
        runtime.close_conversation(chat_id)
    return LeaveChatResponse(chat_id=chat_id, deleted=deleted)


@router.get("/chats/{chat_id}/info", response_model=ChatInfoResponse, summary="Chat info")
async def chat_info(
    chat_id: str,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ChatInfoResponse:
    await runtime.chat_list.wait_idle()
    chat = await runtime.chat_list.chat_info(chat_id)
    members = [
        MemberResponse(
            email=p.email,
            name=p.name,
            label=f"{p.name or p.email} (You)" if p.email == current_user.email else (p.name or p.email),
        )
        for p in chat.members()
    ]
    return ChatInfoResponse(
        chat_id=chat.chat_id,
        name=chat_display_name(chat, current_user.email),
        is_group=isinstance(chat, GroupChat),
        members=members,
        admins=chat.admins if isinstance(chat, GroupChat) else [],
    )
