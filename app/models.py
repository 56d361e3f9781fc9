from pydantic import BaseModel
from typing import Literal, Optional


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    type: Literal["text", "image"] = "text"


class SessionMetadata(BaseModel):
    id: str
    summary: str = ""
    timestamp: str


class AuthRequest(BaseModel):
    password: Optional[str] = None


# Fields are optional so a missing one is reported as 400 naming the field
class ChatRequest(BaseModel):
    question: Optional[str] = None
    sessionId: Optional[str] = None
    userId: Optional[str] = None
    model: Optional[str] = None
    type: Optional[str] = None  # advisory, the catalog decides


class ChatResponse(BaseModel):
    answer: str
    type: Literal["text", "image"]


class DeleteSessionRequest(BaseModel):
    sessionId: Optional[str] = None
    userId: Optional[str] = None


class ModelInfo(BaseModel):
    id: str
    name: str
    type: Literal["text", "image"]
