"""
Coach chat API endpoints.

Alex (training) and Julie (nutrition) answer over Server-Sent Events; every
exchange is stored in a conversation owned by the user.
"""
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db, get_db_sync
from core.exceptions import NotFoundError
from models import ChatMessage, Conversation, Profile
from schemas import ChatMessageResponse, ConversationResponse
from services import coach_chat, llm_gateway
from services.entitlements import coach_usage_count, require_subscription_after_first_use

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/chat", tags=["chat"])


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=4000)


class ChatRequest(BaseModel):
    messages: List[ChatMessageIn] = Field(..., min_length=1, max_length=50)
    context: Dict[str, Any] = Field(default_factory=dict)
    conversation_id: Optional[UUID] = None


class ConversationCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=100)


class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_archived: Optional[bool] = None


def _coach_or_404(coach: str) -> coach_chat.CoachProfile:
    profile = coach_chat.get_coach(coach)
    if profile is None:
        raise NotFoundError("Coach inconnu")
    return profile


def _owned_conversation(db: Session, user: Profile, conversation_id: UUID) -> Conversation:
    conversation = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user.id)
        .first()
    )
    if conversation is None:
        raise NotFoundError("Conversation introuvable")
    return conversation


def _persist_reply(conversation_id, user_id):
    def _save(reply: str) -> None:
        db = get_db_sync()
        try:
            coach_chat.record_assistant_reply(db, conversation_id, user_id, reply)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    return _save


@router.post("/{coach}")
def chat(
    coach: str,
    request: ChatRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Stream a coach reply as ``text/event-stream``.

    The first assistant reply per coach is free. The conversation id (created
    when none is given) comes back in ``X-Conversation-Id``.
    """
    profile = _coach_or_404(coach)
    require_subscription_after_first_use(db, current_user, coach_usage_count(db, current_user.id, profile.key))

    conversation = coach_chat.get_or_create_conversation(db, current_user.id, profile, request.conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation introuvable")

    messages = [m.model_dump() for m in request.messages]
    last_user = next((m for m in reversed(messages) if m["role"] == "user"), None)
    if last_user is not None:
        coach_chat.record_user_message(db, conversation, last_user["content"])

    context = coach_chat.sanitize_context(profile, request.context)
    try:
        chunks = llm_gateway.open_chat_stream(coach_chat.build_messages(profile, context, messages))
    except llm_gateway.LLMGatewayError as e:
        logger.error(
            f"Coach {profile.key} gateway error: {e}",
            extra={"extra_fields": {"user_id": str(current_user.id), "status_code": e.status_code}},
        )
        raise llm_gateway.to_api_exception(e)

    # The reply is written from the stream with its own session.
    db.commit()
    conversation_id = conversation.id
    return StreamingResponse(
        coach_chat.relay_stream(chunks, _persist_reply(conversation_id, current_user.id)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Conversation-Id": str(conversation_id),
        },
    )


@router.get("/{coach}/conversations", response_model=List[ConversationResponse])
def list_conversations(
    coach: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = _coach_or_404(coach)
    return (
        db.query(Conversation)
        .filter(
            Conversation.user_id == current_user.id,
            Conversation.coach_type == profile.key,
            Conversation.is_archived.is_(False),
        )
        .order_by(Conversation.updated_at.desc())
        .all()
    )


@router.post("/{coach}/conversations", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
def create_conversation(
    coach: str,
    request: ConversationCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = _coach_or_404(coach)
    conversation = Conversation(
        user_id=current_user.id,
        coach_type=profile.key,
        title=(request.title or "").strip() or coach_chat.DEFAULT_CONVERSATION_TITLE,
    )
    db.add(conversation)
    db.flush()
    db.refresh(conversation)
    return conversation


@router.delete("/{coach}/conversations/empty")
def delete_empty_conversations(
    coach: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = _coach_or_404(coach)
    with_messages = select(ChatMessage.conversation_id).where(ChatMessage.user_id == current_user.id)
    deleted = (
        db.query(Conversation)
        .filter(
            Conversation.user_id == current_user.id,
            Conversation.coach_type == profile.key,
            Conversation.id.notin_(with_messages),
        )
        .delete(synchronize_session=False)
    )
    return {"success": True, "deleted": deleted}


@router.patch("/conversations/{conversation_id}", response_model=ConversationResponse)
def update_conversation(
    conversation_id: UUID,
    request: ConversationUpdate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = _owned_conversation(db, current_user, conversation_id)
    if request.title is not None:
        conversation.title = request.title.strip() or conversation.title
    if request.is_archived is not None:
        conversation.is_archived = request.is_archived
    db.flush()
    db.refresh(conversation)
    return conversation


@router.delete("/conversations/{conversation_id}")
def delete_conversation(
    conversation_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = _owned_conversation(db, current_user, conversation_id)
    db.query(ChatMessage).filter(ChatMessage.conversation_id == conversation.id).delete(synchronize_session=False)
    db.delete(conversation)
    db.flush()
    return {"success": True}


@router.get("/conversations/{conversation_id}/messages", response_model=List[ChatMessageResponse])
def list_messages(
    conversation_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = _owned_conversation(db, current_user, conversation_id)
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation.id)
        .order_by(ChatMessage.created_at.asc())
        .all()
    )
