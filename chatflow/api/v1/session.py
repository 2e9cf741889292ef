"""Session REST API routes - V1."""

from fastapi import APIRouter, HTTPException, Depends, Query

from ...exceptions import DeliveryError, NothingToRetryError, PersistenceFailure, SubmissionInProgressError
from ...models.api import HistoryListResponse, SendMessageRequest, SessionStateResponse
from ...models.history import ConversationDetail
from ...services.chat_session import ChatSession

router = APIRouter(prefix="/api/v1/session", tags=["Session"])

# Chat session (set by main.py)
chat_session: ChatSession = None


def get_chat_session() -> ChatSession:
    """Dependency to get the chat session."""
    if chat_session is None:
        raise HTTPException(status_code=500, detail="Chat session not initialized")
    return chat_session


def _state_response(session: ChatSession) -> SessionStateResponse:
    """Convert the live session to SessionStateResponse."""
    snapshot = session.snapshot()
    return SessionStateResponse(
        participant_id=snapshot.participant_id,
        conversation_id=snapshot.conversation_id,
        messages=snapshot.messages,
        workflow=snapshot.workflow,
        progress=snapshot.workflow.progress,
        retry_count=snapshot.retry_count,
        is_loading=snapshot.is_loading,
        error=snapshot.error
    )


def _delivery_failed(e: DeliveryError) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={
            "category": e.category.value,
            "message": e.message,
            "retry_count": e.retry_count
        }
    )


@router.get("/state", response_model=SessionStateResponse)
async def get_state(session: ChatSession = Depends(get_chat_session)):
    """Get the live session."""
    return _state_response(session)


@router.post("/messages", response_model=SessionStateResponse)
async def send_message(
    request: SendMessageRequest,
    session: ChatSession = Depends(get_chat_session)
):
    """Send a user message and wait for the reply."""
    try:
        await session.send(request.content)
    except SubmissionInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except DeliveryError as e:
        raise _delivery_failed(e)

    return _state_response(session)


@router.post("/retry", response_model=SessionStateResponse)
async def retry_last_message(session: ChatSession = Depends(get_chat_session)):
    """Resubmit the last user message."""
    try:
        await session.retry_last_message()
    except NothingToRetryError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except SubmissionInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except DeliveryError as e:
        raise _delivery_failed(e)

    return _state_response(session)


@router.post("/regenerate", response_model=SessionStateResponse)
async def regenerate_last_response(session: ChatSession = Depends(get_chat_session)):
    """Drop the last reply and ask again in a fresh conversation."""
    try:
        await session.regenerate_last_response()
    except NothingToRetryError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except SubmissionInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except DeliveryError as e:
        raise _delivery_failed(e)

    return _state_response(session)


@router.post("/new", response_model=SessionStateResponse)
async def new_conversation(session: ChatSession = Depends(get_chat_session)):
    """Save the conversation to history and start a new one."""
    try:
        await session.new_conversation()
    except SubmissionInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)

    return _state_response(session)


@router.get("/history", response_model=HistoryListResponse)
async def list_history(
    force_refresh: bool = Query(False, description="Bypass the history cache"),
    session: ChatSession = Depends(get_chat_session)
):
    """List saved conversations."""
    try:
        conversations = await session.list_history(force_refresh=force_refresh)
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=e.message)

    return HistoryListResponse(conversations=conversations, total=len(conversations))


@router.get("/history/{item_id}", response_model=ConversationDetail)
async def restore_history(
    item_id: str,
    session: ChatSession = Depends(get_chat_session)
):
    """Load a saved conversation and make it the live one."""
    try:
        detail = await session.restore_from_history(item_id)
    except SubmissionInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=e.message)

    if detail is None:
        raise HTTPException(status_code=404, detail=f"History item not found: {item_id}")

    return detail


@router.delete("/history/{item_id}", response_model=dict)
async def delete_history(
    item_id: str,
    session: ChatSession = Depends(get_chat_session)
):
    """Delete a saved conversation."""
    try:
        await session.delete_history(item_id)
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=e.message)

    return {
        "status": "deleted",
        "message": f"History item {item_id} deleted successfully"
    }
