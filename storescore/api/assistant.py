import logging
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status, Depends

from ..config import CHAT_MAX_HISTORY, CHAT_MEMORY_SESSIONS
from ..exceptions import NotFoundError, StoreScoreException
from ..models.schemas import ChatRequest, CreateChatSessionRequest
from ..services.assistant import (
    Assistant, build_store_insights, build_user_context, load_store_product_data, proactive_nudge
)
from ..services.database_service import DatabaseService
from ..services.shopify_integration import ShopifyClient
from ..utils.helpers import generate_session_title
from .dependencies import get_assistant, get_database_service, get_shopify_client, require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/alex")

ANALYSES_IN_CONTEXT = 20


def _load_context(user: Dict[str, Any], db_service: DatabaseService, shopify: ShopifyClient) -> Dict[str, Any]:
    stores = db_service.get_user_stores(user["id"])
    product_data = {}
    for store in stores:
        if store["isConnected"]:
            connected = db_service.get_user_store(store["id"], include_token=True)
            product_data[store["id"]] = load_store_product_data(shopify, connected)

    return build_user_context(
        user,
        stores,
        db_service.get_user_analyses(user["id"], ANALYSES_IN_CONTEXT),
        db_service.get_conversation_memories(user["id"], CHAT_MEMORY_SESSIONS),
        product_data,
    )


def _owned_session(session_id: int, user: Dict[str, Any], db_service: DatabaseService) -> Dict[str, Any]:
    session = db_service.get_chat_session(session_id, user["id"])
    if not session:
        raise NotFoundError("Chat session", session_id)
    return session


@router.get("/sessions")
async def list_sessions(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    sessions = db_service.get_chat_sessions(user["id"])
    return {"success": True, "data": sessions, "total": len(sessions), "message": "OK"}


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
        request: CreateChatSessionRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    session = db_service.create_chat_session(user["id"], request.title or generate_session_title())
    return {"success": True, "data": session, "message": "Chat session created"}


@router.delete("/sessions/{session_id}")
async def delete_session(
        session_id: int,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        assistant: Assistant = Depends(get_assistant)
):
    """Delete a conversation, keeping a short memory of it for later chats"""
    _owned_session(session_id, user, db_service)
    messages = db_service.get_chat_messages(session_id)
    if len(messages) >= 2:
        insights = assistant.extract_conversation_insights(messages)
        db_service.add_conversation_memory(
            user["id"], session_id, insights["topic"], insights["summary"], insights["keyPoints"]
        )

    db_service.delete_chat_session(session_id, user["id"])
    return {"success": True, "data": None, "message": "Chat session deleted"}


@router.get("/sessions/{session_id}/messages")
async def get_messages(
        session_id: int,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    _owned_session(session_id, user, db_service)
    messages = db_service.get_chat_messages(session_id)
    return {"success": True, "data": messages, "total": len(messages), "message": "OK"}


@router.post("/chat")
async def chat(
        request: ChatRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        shopify: ShopifyClient = Depends(get_shopify_client),
        assistant: Assistant = Depends(get_assistant)
):
    """
    Send a message to Alex

    Without ``sessionId`` a new session is started. The reply is generated
    from the user's stores, analyses and past conversations plus the last
    ten messages of the session.
    """
    try:
        if request.session_id is not None:
            session = _owned_session(request.session_id, user, db_service)
        else:
            session = db_service.create_chat_session(user["id"], generate_session_title())

        history = [
            {"role": "assistant" if m["isFromAssistant"] else "user", "content": m["content"]}
            for m in db_service.get_chat_messages(session["id"], CHAT_MAX_HISTORY)
        ]
        context = _load_context(user, db_service, shopify)
        reply = assistant.generate_reply(request.message, context, history)

        user_message = db_service.add_chat_message(session["id"], request.message, is_from_assistant=False)
        assistant_message = db_service.add_chat_message(session["id"], reply, is_from_assistant=True)

        return {
            "success": True,
            "data": {
                "sessionId": session["id"],
                "reply": reply,
                "userMessage": user_message,
                "assistantMessage": assistant_message,
            },
            "message": "OK"
        }

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error in chat for user {user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while processing the message"
        )


@router.get("/insights")
async def get_insights(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    insights = build_store_insights(
        db_service.get_user_stores(user["id"]),
        db_service.get_user_analyses(user["id"], ANALYSES_IN_CONTEXT),
    )
    return {"success": True, "data": insights, "message": "OK"}


@router.get("/proactive")
async def get_proactive_nudge(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    insights = build_store_insights(
        db_service.get_user_stores(user["id"]),
        db_service.get_user_analyses(user["id"], ANALYSES_IN_CONTEXT),
    )
    nudge = proactive_nudge(insights)
    return {"success": True, "data": nudge, "message": "OK" if nudge else "Nothing to suggest right now"}


@router.get("/welcome")
async def get_welcome(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        shopify: ShopifyClient = Depends(get_shopify_client),
        assistant: Assistant = Depends(get_assistant)
):
    context = _load_context(user, db_service, shopify)
    return {"success": True, "data": {"message": assistant.generate_welcome(context)}, "message": "OK"}
