import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_analyst, get_existing_workspace
from app.api.validation import validate_chat_message
from app.schemas.chat import ChatMessage, ChatRequest
from app.services.openai_service import ChatSession, OpenAIService
from app.services.session_store import Workspace, WorkspaceBusyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

APOLOGY = "죄송합니다, 오류가 발생했습니다. 다시 시도해 주세요."


async def relay_reply(
    workspace: Workspace,
    chat: ChatSession,
    analyst: OpenAIService,
    message: str,
    token: int,
) -> AsyncIterator[str]:
    """Forward reply fragments in arrival order while mirroring them into the transcript.

    A failure at any point becomes a single apologetic model message so the conversation
    can continue.
    """
    # Bound to this analysis' transcript; a new analysis swaps the list out
    messages = workspace.messages
    reply_index = None
    text = ""
    try:
        async for fragment in analyst.send_chat_message(chat, message):
            if reply_index is None:
                messages.append(ChatMessage(role="model", text=""))
                reply_index = len(messages) - 1
            text += fragment
            messages[reply_index] = ChatMessage(role="model", text=text)
            yield fragment
    except Exception as e:
        logger.error(f"Chat reply failed for workspace {workspace.client_id}: {e}")
        messages.append(ChatMessage(role="model", text=APOLOGY))
        yield f"\n\n{APOLOGY}" if text else APOLOGY
    finally:
        workspace.end_chat(token)


@router.get("/messages", response_model=list[ChatMessage])
async def get_messages(workspace: Workspace | None = Depends(get_existing_workspace)):
    if workspace is None:
        return []
    return workspace.messages


@router.post("/messages")
async def send_message(
    request: ChatRequest,
    workspace: Workspace | None = Depends(get_existing_workspace),
    analyst: OpenAIService = Depends(get_analyst),
):
    """Ask a follow-up question; the reply is streamed as plain text fragments."""
    if workspace is None or workspace.chat is None:
        raise HTTPException(status_code=400, detail="채팅이 초기화되지 않았습니다.")

    message = validate_chat_message(request.message)

    try:
        token = workspace.begin_chat()
    except WorkspaceBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    workspace.messages.append(ChatMessage(role="user", text=message))
    return StreamingResponse(
        relay_reply(workspace, workspace.chat, analyst, message, token),
        media_type="text/plain; charset=utf-8",
    )
