"""REST API gateway and wire schemas."""

from .client import (
    NETWORK_ERROR_MESSAGE,
    UNEXPECTED_RESPONSE_MESSAGE,
    UPLOAD_NETWORK_ERROR_MESSAGE,
    ApiGateway,
)
from .schemas import ApiError, ApiResult, AuthResponse, Chunk, Document, SearchResult, SearchSource, User

__all__ = [
    "ApiError",
    "ApiGateway",
    "ApiResult",
    "AuthResponse",
    "Chunk",
    "Document",
    "NETWORK_ERROR_MESSAGE",
    "SearchResult",
    "SearchSource",
    "UNEXPECTED_RESPONSE_MESSAGE",
    "UPLOAD_NETWORK_ERROR_MESSAGE",
    "User",
]
