from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
import structlog

from api.models import ConversationResponse, SendMessageRequest
from api.runtime import ClientRuntime, get_current_user, get_runtime
from linkup.chats.conversation import ConversationLog, render_message
from linkup.models.session import User
from linkup.models.views import RenderedMessage

router = APIRouter()
logger = structlog.get_logger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024


def _conversation(log: ConversationLog) -> ConversationResponse:
    return ConversationResponse(
        chat_id=log.chat_id,
        state=log.state.value,
        messages=log.messages,
        upload_state=log.upload_state,
        emoji_picker_open=log.emoji_picker_open,
        removed=log.removed,
        error=log.error.message if log.error else None,
    )


@router.post("/chats/{chat_id}/open", response_model=ConversationResponse, summary="Open a conversation")
async def open_conversation(
    chat_id: str,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ConversationResponse:
    """Subscribe to the chat and mark it read."""
    return _conversation(await runtime.open_conversation(chat_id))


@router.post("/chats/{chat_id}/close", status_code=status.HTTP_204_NO_CONTENT, summary="Close a conversation")
async def close_conversation(
    chat_id: str,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> Response:
    runtime.close_conversation(chat_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/chats/{chat_id}/messages", response_model=ConversationResponse, summary="Messages, newest first")
async def get_messages(
    chat_id: str,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> ConversationResponse:
    return _conversation(await runtime.open_conversation(chat_id))


@router.post(
    "/chats/{chat_id}/messages",
    response_model=RenderedMessage,
    status_code=status.HTTP_201_CREATED,
    summary="Send a text or emoji message",
)
async def send_message(
    chat_id: str,
    request: SendMessageRequest,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> RenderedMessage:
    log = await runtime.open_conversation(chat_id)
    if request.emoji is not None:
        message = await log.send_emoji(request.emoji)
    else:
        message = await log.send_text(request.text)
    return render_message(message, current_user.email, runtime.settings.avatar_size)


@router.post(
    "/chats/{chat_id}/images",
    response_model=RenderedMessage,
    status_code=status.HTTP_201_CREATED,
    summary="Upload and send an image",
)
async def send_image(
    chat_id: str,
    request: Request,
    runtime: ClientRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_user),
) -> RenderedMessage:
    """
    Upload the raw request body as an image and append it to the chat.

    The body is the image bytes; ``Content-Type`` is stored with the object.
    """
    data = await request.body()
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Image too large")
    log = await runtime.open_conversation(chat_id)
    content_type = request.headers.get("content-type") or "image/jpeg"
    message = await log.send_image(data, content_type)
    logger.info("Image message sent", chat_id=chat_id, size=len(data))
    return render_message(message, current_user.email, runtime.settings.avatar_size)
