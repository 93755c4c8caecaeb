"""HTTPX-based gateway to the knowledge-base REST API."""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any, Callable, List, Mapping, Sequence, Tuple, Union
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from zettelsync.api.schemas import (
    ApiResult,
    AuthResponse,
    Chunk,
    Document,
    SearchRequest,
    SearchResult,
    UploadAccepted,
)
from zettelsync.config import Settings, get_settings
from zettelsync.metrics.observability import ClientMetrics, TimedSection, get_logger

NETWORK_ERROR_MESSAGE = "Network error. Please try again."
UPLOAD_NETWORK_ERROR_MESSAGE = "Upload failed. Please try again."
UNEXPECTED_RESPONSE_MESSAGE = "Unexpected response from server"

UploadSource = Union[Path, str, Tuple[str, bytes]]

_DOCUMENTS = TypeAdapter(List[Document])
_CHUNKS = TypeAdapter(List[Chunk])
_RESULTS = TypeAdapter(List[SearchResult])


class ApiGateway:
    """Translates domain operations into authenticated HTTP calls.

    Every public coroutine returns an ``ApiResult``; network failures,
    non-2xx responses and malformed bodies all become ``success=False`` with a
    human-readable message. The bearer token is read from ``token_provider``
    on each request so a rotated session token is picked up immediately.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token_provider: Callable[[], str | None] | None = None,
        settings: Settings | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = (base_url or self._settings.api_url).rstrip("/")
        self._token_provider = token_provider or (lambda: None)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout if timeout is not None else self._settings.request_timeout,
            transport=transport,
        )
        self._in_flight = 0
        self._logger = get_logger("api")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    async def search(
        self,
        query: str,
        limit: int | None = None,
        similarity_threshold: float | None = None,
    ) -> ApiResult[List[SearchResult]]:
        try:
            request = SearchRequest(
                query=query.strip(),
                limit=limit if limit is not None else self._settings.search_default_limit,
                similarity_threshold=(
                    similarity_threshold
                    if similarity_threshold is not None
                    else self._settings.search_default_similarity_threshold
                ),
            )
        except ValidationError as exc:
            return ApiResult.fail(_first_error(exc), code="validation_error")

        result = await self._request("search", "POST", "/search", json=request.model_dump())
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        raw = result.data.get("results", []) if isinstance(result.data, Mapping) else result.data
        return self._parse("search", _RESULTS, raw or [])

    async def list_documents(self) -> ApiResult[List[Document]]:
        result = await self._request("list_documents", "GET", "/documents")
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        raw = result.data.get("documents") if isinstance(result.data, Mapping) else None
        return self._parse("list_documents", _DOCUMENTS, raw or [])

    async def upload_documents(self, files: Sequence[UploadSource], source_type: str) -> ApiResult[str]:
        """Enqueue files for server-side ingestion and return the job id."""

        if not files:
            return ApiResult.fail("Please choose at least one file to upload.", code="validation_error")
        allowed = self._settings.allowed_source_types_tuple
        if source_type not in allowed:
            return ApiResult.fail(
                f"Unsupported source type: {source_type or '<none>'}",
                code="validation_error",
            )
        try:
            parts = [("files[]", _file_part(item)) for item in files]
        except OSError as exc:
            return ApiResult.fail(f"Could not read upload: {exc}", code="validation_error")

        result = await self._request(
            "upload_documents",
            "POST",
            "/documents/upload",
            files=parts,
            data={"source_type": source_type},
            default_error="Upload failed",
            network_error=UPLOAD_NETWORK_ERROR_MESSAGE,
        )
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        try:
            accepted = UploadAccepted.model_validate(result.data)
        except ValidationError as exc:
            self._logger.error("api.bad_response", operation="upload_documents", detail=str(exc))
            return ApiResult.fail(UNEXPECTED_RESPONSE_MESSAGE, code="bad_response")
        self._logger.info("api.upload_accepted", job_id=accepted.job_id, file_count=len(files))
        return ApiResult.ok(accepted.job_id)

    async def delete_document(self, document_id: str) -> ApiResult[None]:
        result = await self._request("delete_document", "DELETE", f"/documents/{quote(document_id, safe='')}")
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        return ApiResult.ok(None)

    async def get_document_chunks(self, document_id: str) -> ApiResult[List[Chunk]]:
        path = f"/documents/{quote(document_id, safe='')}/chunks"
        result = await self._request("get_document_chunks", "GET", path)
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        raw = result.data.get("chunks") if isinstance(result.data, Mapping) else None
        try:
            chunks = _CHUNKS.validate_python(raw or [])
        except ValidationError as exc:
            self._logger.error("api.bad_response", operation="get_document_chunks", detail=str(exc))
            return ApiResult.fail(UNEXPECTED_RESPONSE_MESSAGE, code="bad_response")
        return ApiResult.ok(sorted(chunks, key=lambda chunk: chunk.chunk_index))

    async def login(self, email: str, password: str) -> ApiResult[AuthResponse]:
        if not email or not password:
            return ApiResult.fail("Please fill in all required fields", code="validation_error")
        result = await self._request(
            "login",
            "POST",
            "/auth/login",
            json={"email": email, "password": password},
            default_error="Login failed",
            authenticated=False,
        )
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        try:
            return ApiResult.ok(AuthResponse.model_validate(result.data))
        except ValidationError as exc:
            self._logger.error("api.bad_response", operation="login", detail=str(exc))
            return ApiResult.fail(UNEXPECTED_RESPONSE_MESSAGE, code="bad_response")

    async def signup(self, email: str, password: str, name: str) -> ApiResult[dict]:
        if not email or not password:
            return ApiResult.fail("Please fill in all required fields", code="validation_error")
        if not name:
            return ApiResult.fail("Name is required for signup", code="validation_error")
        result = await self._request(
            "signup",
            "POST",
            "/auth/signup",
            json={"email": email, "password": password, "name": name},
            default_error="Signup failed",
            authenticated=False,
        )
        if not result.success:
            return ApiResult.fail(result.error.message, code=result.error.code)
        return ApiResult.ok(result.data if isinstance(result.data, dict) else {})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        files: Any = None,
        data: Mapping[str, str] | None = None,
        default_error: str = "Request failed",
        network_error: str = NETWORK_ERROR_MESSAGE,
        authenticated: bool = True,
    ) -> ApiResult[Any]:
        headers = {}
        token = self._token_provider() if authenticated else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._in_flight += 1
        try:
            with TimedSection(lambda duration: ClientMetrics.observe_latency(operation, duration)):
                response = await self._client.request(
                    method,
                    path,
                    json=json,
                    files=files,
                    data=data,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            ClientMetrics.count_request(operation, success=False)
            self._logger.warning("api.network_error", operation=operation, detail=str(exc))
            return ApiResult.fail(network_error, code="network_error")
        finally:
            self._in_flight -= 1

        body = _json_or_none(response)
        ClientMetrics.count_request(operation, success=response.is_success)
        if response.is_success:
            return ApiResult.ok(body)
        message = _server_message(body) or default_error
        self._logger.warning(
            "api.request_failed",
            operation=operation,
            status_code=response.status_code,
            detail=message,
        )
        return ApiResult.fail(message, code=str(response.status_code))

    def _parse(self, operation: str, adapter: TypeAdapter, raw: Any) -> ApiResult[Any]:
        try:
            return ApiResult.ok(adapter.validate_python(raw))
        except ValidationError as exc:
            self._logger.error("api.bad_response", operation=operation, detail=str(exc))
            return ApiResult.fail(UNEXPECTED_RESPONSE_MESSAGE, code="bad_response")


def _file_part(item: UploadSource) -> tuple[str, bytes, str]:
    if isinstance(item, tuple):
        name, content = item
    else:
        path = Path(item)
        name, content = path.name, path.read_bytes()
    mime, _ = mimetypes.guess_type(name)
    return name, content, mime or "application/octet-stream"


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _server_message(body: Any) -> str | None:
    if not isinstance(body, Mapping):
        return None
    error = body.get("error")
    if isinstance(error, Mapping) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return None


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg', 'invalid value')}" if field else str(first.get("msg"))
