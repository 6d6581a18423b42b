"""
Coach chat (Alex: training, Julie: nutrition)

The client sends the running conversation plus a small context object built
from the user's profile. The context is untrusted: only the coach's known keys
survive, values are bounded, and the result is rendered into the coach's
system prompt. The model's answer is streamed back as server-sent events and
persisted once complete.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from models import ChatMessage, Conversation
from services import llm_gateway

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_TITLE = "Nouvelle conversation"
TITLE_MAX_CHARS = 50
CONTEXT_MAX_STRING = 200
CONTEXT_MAX_LIST = 20

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _clean_str(value: str) -> str:
    return _CONTROL_CHARS.sub(" ", value).strip()[:CONTEXT_MAX_STRING]


def _clean_scalar(value: Any) -> Optional[Any]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = _clean_str(value)
        return cleaned or None
    return None


def _clean_value(value: Any) -> Optional[Any]:
    if isinstance(value, list):
        items = [_clean_scalar(v) for v in value[:CONTEXT_MAX_LIST]]
        return [v for v in items if v is not None and not isinstance(v, bool)]
    return _clean_scalar(value)


def _listing(value: Any, fallback: str) -> str:
    if isinstance(value, list) and value:
        return ", ".join(str(v) for v in value)
    return fallback


def _alex_prompt(ctx: Dict[str, Any]) -> str:
    return f"""Tu es Alex, coach sportif expert en musculation et fitness.
Tu aides les utilisateurs à optimiser leur entraînement avec des conseils techniques clairs et concis.
Tu es direct, motivant et tu te concentres sur l'action concrète.

Contexte utilisateur actuel :
- Objectif : {ctx.get('goal_type') or 'non défini'}
- Fréquence d'entraînement : {ctx.get('frequency') or 'non définie'} séances/semaine
- Niveau d'expérience : {ctx.get('experience_level') or 'non défini'}
- Matériel disponible : {_listing(ctx.get('equipment'), 'non défini')}
- Préférences : {ctx.get('session_type') or 'non défini'}
- Limitations : {_listing(ctx.get('limitations'), 'aucune')}

Tu dois :
- Répondre en français, de manière courte et actionnable
- Donner des conseils techniques précis basés sur le contexte de l'utilisateur
- Proposer des alternatives ou modifications d'exercices si demandé
- Motiver l'utilisateur sans être trop verbeux
- Toujours tenir compte des limitations et du matériel disponible"""


def _julie_prompt(ctx: Dict[str, Any]) -> str:
    return f"""Tu es Julie, nutritionniste diplômée et experte en nutrition sportive.
Tu aides les utilisateurs à optimiser leur alimentation pour atteindre leurs objectifs.
Tu es pédagogue, bienveillante et tu donnes des conseils pratiques et réalistes.

Contexte utilisateur actuel :
- Objectif : {ctx.get('goal_type') or 'non défini'}
- TDEE : {ctx.get('tdee') or 'non calculé'} kcal
- Calories cibles : {ctx.get('target_calories') or 'non calculées'} kcal
- Macros cibles : P={ctx.get('protein') or 0}g, F={ctx.get('fat') or 0}g, G={ctx.get('carbs') or 0}g
- Repas par jour : {ctx.get('meals_per_day') or 'non défini'}
- Restrictions : {_listing(ctx.get('restrictions'), 'aucune')}
- Allergies : {_listing(ctx.get('allergies'), 'aucune')}

Tu dois :
- Répondre en français, de manière claire et actionnable
- Donner des conseils nutritionnels précis basés sur le contexte de l'utilisateur
- Proposer des recettes simples adaptées aux objectifs et contraintes
- Suggérer des substitutions alimentaires quand demandé
- Respecter les allergies et restrictions alimentaires
- Être encourageante sans être moralisatrice"""


@dataclass(frozen=True)
class CoachProfile:
    key: str
    name: str
    context_keys: Tuple[str, ...]
    build_prompt: Callable[[Dict[str, Any]], str]


COACHES: Dict[str, CoachProfile] = {
    "alex": CoachProfile(
        key="alex",
        name="Alex",
        context_keys=("goal_type", "frequency", "experience_level", "equipment", "session_type", "limitations"),
        build_prompt=_alex_prompt,
    ),
    "julie": CoachProfile(
        key="julie",
        name="Julie",
        context_keys=(
            "goal_type", "tdee", "target_calories", "protein", "fat", "carbs",
            "meals_per_day", "restrictions", "allergies",
        ),
        build_prompt=_julie_prompt,
    ),
}


def get_coach(coach: str) -> Optional[CoachProfile]:
    return COACHES.get((coach or "").lower())


def sanitize_context(coach: CoachProfile, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep whitelisted keys only, with bounded and printable values."""
    if not isinstance(context, dict):
        return {}
    out: Dict[str, Any] = {}
    for key in coach.context_keys:
        if key not in context:
            continue
        value = _clean_value(context[key])
        if value is None or value == []:
            continue
        out[key] = value
    return out


def build_messages(coach: CoachProfile, context: Dict[str, Any], messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    return [{"role": "system", "content": coach.build_prompt(context)}, *messages]


def title_from_message(content: str) -> str:
    text = (content or "").strip()
    return text[:TITLE_MAX_CHARS] + ("..." if len(text) > TITLE_MAX_CHARS else "")


def get_or_create_conversation(db: Session, user_id, coach: CoachProfile, conversation_id=None) -> Optional[Conversation]:
    """
    Conversation owned by ``user_id`` for this coach. None when the id does
    not belong to the user; a new conversation when no id was supplied.
    """
    if conversation_id is not None:
        return (
            db.query(Conversation)
            .filter(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
                Conversation.coach_type == coach.key,
            )
            .first()
        )
    conversation = Conversation(user_id=user_id, coach_type=coach.key, title=DEFAULT_CONVERSATION_TITLE)
    db.add(conversation)
    db.flush()
    return conversation


def record_user_message(db: Session, conversation: Conversation, content: str) -> ChatMessage:
    msg = ChatMessage(conversation_id=conversation.id, user_id=conversation.user_id, role="user", content=content)
    db.add(msg)
    if conversation.title == DEFAULT_CONVERSATION_TITLE:
        conversation.title = title_from_message(content)
    db.flush()
    return msg


def record_assistant_reply(db: Session, conversation_id, user_id, content: str) -> Optional[ChatMessage]:
    if not content.strip():
        return None
    msg = ChatMessage(conversation_id=conversation_id, user_id=user_id, role="assistant", content=content)
    db.add(msg)
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation is not None:
        conversation.updated_at = datetime.now(timezone.utc)
    db.flush()
    return msg


def sse_event(payload: Dict[str, Any]) -> bytes:
    return b"data: " + json.dumps(payload, ensure_ascii=False).encode("utf-8") + b"\n\n"


SSE_DONE = b"data: [DONE]\n\n"


def relay_stream(
    chunks: Iterator[Dict[str, Any]],
    on_complete: Callable[[str], None],
) -> Iterator[bytes]:
    """
    Re-emit gateway chunks as SSE and hand the full reply to ``on_complete``.

    A mid-stream gateway failure ends the stream with an error event; the
    partial reply is still persisted.
    """
    parts: List[str] = []
    try:
        for chunk in chunks:
            parts.append(llm_gateway.chunk_text(chunk))
            yield sse_event(chunk)
    except llm_gateway.LLMGatewayError as e:
        yield sse_event({"error": llm_gateway.to_api_exception(e).detail})
    finally:
        reply = "".join(parts)
        try:
            on_complete(reply)
        except Exception:
            logger.exception("Failed to persist coach reply")
    yield SSE_DONE
