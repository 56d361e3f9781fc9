import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from app.config import Settings
from app.errors import BadRequestError, UpstreamError
from app.inference import InferenceClient
from app.kv_store import KVStore
from app.model_catalog import ModelCatalog, ModelSpec
from app.models import ChatMessage, ChatRequest
from app.session_manager import append_turn, get_history, upsert_session

logger = logging.getLogger(__name__)

CONTEXT_WINDOW = 5
SUMMARY_MAX_WORDS = 10


def utc_timestamp() -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_summary_prompt(history: List[Dict[str, Any]]) -> str:
    conversation = "\n".join(f"{m.get('role')}: {m.get('content')}" for m in history)
    return (
        f"Summarize the following conversation concisely in English, maximum {SUMMARY_MAX_WORDS} words. "
        "If the conversation is very short, just use the first user message.\n"
        f"Conversation:\n{conversation}"
    )


def fallback_summary(history: List[Dict[str, Any]]) -> str:
    first_user = next((m for m in history if m.get("role") == "user"), None)
    if not first_user:
        return ""
    return " ".join(str(first_user.get("content", "")).split()[:SUMMARY_MAX_WORDS])


def _require(value, field: str) -> str:
    if not isinstance(value, str) or not value:
        raise BadRequestError(f"Missing {field}")
    return value


def refresh_summary(
    history: List[Dict[str, Any]],
    inference: InferenceClient,
    settings: Settings,
) -> str:
    try:
        result = inference.run(settings.summary_model, prompt=build_summary_prompt(history))
        return str(result.get("response", "")).strip()
    except Exception as e:
        if not settings.summary_best_effort:
            raise
        logger.warning("Summary generation failed, using first user message: %s", e)
        return fallback_summary(history)


def validate_chat_request(
    request: ChatRequest,
    catalog: ModelCatalog,
    settings: Settings,
) -> Tuple[str, str, str, ModelSpec]:
    """Field and model checks. Touches neither the store nor inference."""
    question = _require(request.question, "question")
    session_id = _require(request.sessionId, "sessionId")
    user_id = _require(request.userId, "userId")

    model_id = request.model or settings.ai_model
    model = catalog.get(model_id)
    if model is None:
        raise BadRequestError(
            f"Invalid model selected or model not supported: {model_id}. Please choose a valid model."
        )
    if request.type and request.type != model.type:
        logger.debug("Client type %s overridden by catalog type %s for %s", request.type, model.type, model_id)
    return question, session_id, user_id, model


def answer_chat_turn(
    request: ChatRequest,
    store: KVStore,
    inference: InferenceClient,
    catalog: ModelCatalog,
    settings: Settings,
) -> Dict[str, str]:
    """
    One chat turn: validate, call inference on the session context, persist
    both messages, refresh the session summary, update the index.

    Validation happens before any store access, so a rejected request leaves
    history and index untouched. Inference is not repeated if a later step
    fails.
    """
    question, session_id, user_id, model = validate_chat_request(request, catalog, settings)
    model_id = model.id

    history = get_history(store, user_id, session_id)
    user_msg = ChatMessage(role="user", content=question, type="text").model_dump()
    history.append(user_msg)

    if model.type == "image":
        result = inference.run(model_id, prompt=question, modality="image")
        image_b64 = result.get("image_b64")
        if not image_b64:
            raise UpstreamError(f"No image returned by {model_id}")
        answer = f"data:image/png;base64,{image_b64}"
        answer_type = "image"
    else:
        context = [{"role": m.get("role"), "content": m.get("content")} for m in history[-CONTEXT_WINDOW:]]
        result = inference.run(model_id, messages=context)
        answer = str(result.get("response", ""))
        answer_type = "text"

    assistant_msg = ChatMessage(role="assistant", content=answer, type=answer_type).model_dump()
    persisted = append_turn(
        store, user_id, session_id, user_msg, assistant_msg,
        retries=settings.kv_write_retries,
    )

    summary = refresh_summary(persisted, inference, settings)
    upsert_session(
        store, user_id, session_id, summary, utc_timestamp(),
        retries=settings.kv_write_retries,
    )

    return {"answer": answer, "type": answer_type}
