from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from functools import lru_cache
from typing import Callable, List, Optional
import logging
import json
import datetime
import os
from db.database import engine, SessionLocal
from db.models import Base
from app.auth import (
    SUPPORTED_LANGS,
    authenticate,
    clear_session_cookie,
    guard,
    set_session_cookie,
)
from app.chat_service import answer_chat_turn, validate_chat_request
from app.config import Settings, get_settings
from app.errors import BadRequestError
from app.inference import InferenceClient, OpenAIInference
from app.kv_store import SqlKVStore
from app.model_catalog import ModelCatalog, load_model_catalog
from app.models import (
    AuthRequest, ChatRequest, ChatResponse, DeleteSessionRequest, ModelInfo
)
from app.pages import render_chat_page, render_login_page
from app.session_manager import delete_session, get_history, list_sessions

Base.metadata.create_all(bind=engine)

settings = get_settings()

app = FastAPI(
    title="Chat Session API",
    description="Password-gated multi-session chat backed by a key-value store",
    version="1.0.0"
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("audit_logger")


# =========================
# DEPENDENCIES
# =========================

def get_store():
    db = SessionLocal()
    try:
        yield SqlKVStore(db)
    finally:
        db.close()


@lru_cache
def _build_inference() -> OpenAIInference:
    return OpenAIInference.from_settings(get_settings())


def get_inference_provider() -> Callable[[], InferenceClient]:
    # Built on first use, after the request has been validated
    return _build_inference


@lru_cache
def get_catalog() -> ModelCatalog:
    return load_model_catalog(get_settings().model_catalog_path)


def _audit(status: str, **fields) -> None:
    audit_log = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "status": status,
        **fields,
    }
    if status == "SUCCESS":
        logger.info("AUDIT_LOG: %s", json.dumps(audit_log))
    else:
        logger.error("AUDIT_LOG: %s", json.dumps(audit_log))


# =========================
# ACCESS GATE
# =========================

@app.middleware("http")
async def access_gate(request: Request, call_next):
    redirect = guard(request)
    if redirect is not None:
        return redirect
    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def malformed_request_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid request body"})


@app.post("/authenticate")
def authenticate_route(body: AuthRequest, response: Response, settings: Settings = Depends(get_settings)):
    if body.password is None:
        raise HTTPException(status_code=400, detail="Missing password")
    if not authenticate(body.password, settings.app_password):
        logger.warning("Rejected authentication attempt")
        raise HTTPException(status_code=401, detail="Incorrect password")

    set_session_cookie(response, settings.session_cookie_max_age)
    return {"status": "authenticated"}


@app.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"status": "logged out"}


@app.get("/health")
def health_check():
    """Health check for the hosting platform"""
    return {"status": "healthy"}


# =========================
# PAGES
# =========================

def _check_lang(lang: str) -> str:
    if lang not in SUPPORTED_LANGS:
        raise HTTPException(status_code=404, detail="Not Found")
    return lang


@app.get("/login", response_class=HTMLResponse)
def login_page_default():
    return render_login_page("en")


@app.get("/{lang}/login", response_class=HTMLResponse)
def login_page(lang: str):
    return render_login_page(_check_lang(lang))


@app.get("/", response_class=HTMLResponse)
@app.get("/chat", response_class=HTMLResponse)
def chat_page_default():
    return render_chat_page("en")


@app.get("/{lang}/chat", response_class=HTMLResponse)
def chat_page(lang: str):
    return render_chat_page(_check_lang(lang))


# =========================
# SESSION API
# =========================

@app.get("/api/models", response_model=List[ModelInfo])
def model_list(catalog: ModelCatalog = Depends(get_catalog)):
    return [m.model_dump() for m in catalog.all()]


@app.get("/api/history")
def history(
    sessionId: Optional[str] = None,
    userId: Optional[str] = None,
    store: SqlKVStore = Depends(get_store),
):
    if not sessionId or not userId:
        raise HTTPException(status_code=400, detail="Missing sessionId or userId")
    try:
        return get_history(store, userId, sessionId)
    except Exception as e:
        logger.error("Error fetching history: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve chat history: {e}")


@app.get("/api/session_list")
def session_list(userId: Optional[str] = None, store: SqlKVStore = Depends(get_store)):
    if not userId:
        raise HTTPException(status_code=400, detail="Missing userId")
    try:
        sessions = list_sessions(store, userId)
    except Exception as e:
        logger.error("Error fetching session list: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve session list: {e}")

    sessions = [s for s in sessions if isinstance(s, dict)]
    return sorted(sessions, key=lambda s: str(s.get("timestamp", "")), reverse=True)


@app.post("/api/chat", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    store: SqlKVStore = Depends(get_store),
    inference_provider: Callable[[], InferenceClient] = Depends(get_inference_provider),
    catalog: ModelCatalog = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
):
    try:
        validate_chat_request(request, catalog, settings)
        inference = inference_provider()
        result = answer_chat_turn(request, store, inference, catalog, settings)
        _audit(
            "SUCCESS",
            user_id=request.userId,
            session_id=request.sessionId,
            model=request.model or settings.ai_model,
            answer_type=result["type"],
        )
        return result
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        _audit(
            "ERROR",
            user_id=request.userId,
            session_id=request.sessionId,
            model=request.model or settings.ai_model,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail=f"Error: {e}")


@app.post("/api/delete_session", response_class=PlainTextResponse)
def delete_session_route(
    request: DeleteSessionRequest,
    store: SqlKVStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    if not request.sessionId or not request.userId:
        raise HTTPException(status_code=400, detail="Missing sessionId or userId for deletion")
    try:
        delete_session(store, request.userId, request.sessionId, retries=settings.kv_write_retries)
    except Exception as e:
        logger.error("Error deleting session: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to delete session: {e}")
    return "Session deleted successfully"


# For local development
if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
