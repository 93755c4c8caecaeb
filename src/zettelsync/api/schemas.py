"""Pydantic models for the knowledge-base REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

SourceType = Literal["standard", "notion", "obsidian", "roam", "logseq"]


class Document(BaseModel):
    """Document snapshot entry as listed by the server and held in the cache."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Stable identifier of the document")
    title: str = ""
    content: str = Field(default="", description="Full content or a server-side summary")
    source_type: str = "standard"
    chunk_count: int = Field(default=0, ge=0)
    uploaded_at: Optional[datetime] = None
    tags: Optional[List[str]] = None


class Chunk(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    document_id: str
    content: str
    chunk_index: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class SearchSource(BaseModel):
    document_id: str
    title: str = ""
    type: str = ""
    original_path: str = ""


class SearchResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    content: str
    similarity_score: float
    source: SearchSource
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(..., ge=1)
    similarity_threshold: float = Field(..., ge=0.0, le=1.0)


class User(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    name: str = ""


class AuthResponse(BaseModel):
    """Login response; `access_token` becomes the session token."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    user: Optional[User] = None


class UploadAccepted(BaseModel):
    model_config = ConfigDict(extra="ignore")

    job_id: str
    status: str = "processing"
    files_received: int = 0


class ApiError(BaseModel):
    message: str
    code: Optional[str] = None


class ApiResult(BaseModel, Generic[T]):
    """Uniform outcome of every gateway call: check `success`, never catch."""

    success: bool
    data: Optional[T] = None
    error: Optional[ApiError] = None

    @classmethod
    def ok(cls, data: T | None = None) -> "ApiResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str, code: str | None = None) -> "ApiResult[T]":
        return cls(success=False, error=ApiError(message=message, code=code))
