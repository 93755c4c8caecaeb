"""Markdown export of search hits and full documents."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence

from zettelsync.api.client import ApiGateway
from zettelsync.api.schemas import SearchResult
from zettelsync.metrics.observability import get_logger
from zettelsync.models import ExportItem

SECTION_SEPARATOR = "\n\n---\n\n"
CHUNK_SEPARATOR = "\n\n"

_logger = get_logger("export")


def _chunk_index(result: SearchResult) -> int:
    try:
        return int(result.metadata.get("chunk_index", 0))
    except (TypeError, ValueError):
        return 0


def build_export_items(
    results: Sequence[SearchResult],
    document_contents: Mapping[str, str] | None = None,
) -> List[ExportItem]:
    """Group search hits by document into one document item plus one item per chunk.

    A document item uses the full text from ``document_contents`` when it was
    materialised, otherwise the concatenation of its hits in chunk order.
    """

    contents = document_contents or {}
    grouped: Dict[str, List[SearchResult]] = {}
    for result in results:
        grouped.setdefault(result.source.document_id, []).append(result)

    items: List[ExportItem] = []
    for document_id, hits in grouped.items():
        hits = sorted(hits, key=_chunk_index)
        title = hits[0].source.title
        content = contents.get(document_id) or CHUNK_SEPARATOR.join(hit.content for hit in hits)
        items.append(
            ExportItem(
                id=f"doc_{document_id}",
                kind="document",
                title=title,
                content=content,
                document_id=document_id,
            ),
        )
        for hit in hits:
            index = _chunk_index(hit)
            items.append(
                ExportItem(
                    id=f"chunk_{hit.id}",
                    kind="chunk",
                    title=f"{title} - Chunk {index + 1}",
                    content=hit.content,
                    document_id=document_id,
                    chunk_index=index,
                ),
            )

    items.sort(
        key=lambda item: (
            grouped[item.document_id][0].source.title,
            item.document_id,
            0 if item.kind == "document" else 1,
            item.chunk_index or 0,
        ),
    )
    return items


async def load_document_contents(gateway: ApiGateway, document_ids: Iterable[str]) -> Dict[str, str]:
    """Fetch full text for each document from its ordered chunks; failures are skipped."""

    unique_ids = list(dict.fromkeys(document_ids))
    results = await asyncio.gather(*(gateway.get_document_chunks(doc_id) for doc_id in unique_ids))
    contents: Dict[str, str] = {}
    for doc_id, result in zip(unique_ids, results):
        if not result.success:
            _logger.warning("export.chunks_unavailable", document_id=doc_id, detail=result.error.message)
            continue
        contents[doc_id] = CHUNK_SEPARATOR.join(chunk.content for chunk in result.data)
    return contents


async def prepare_export(gateway: ApiGateway, results: Sequence[SearchResult]) -> List[ExportItem]:
    contents = await load_document_contents(gateway, (result.source.document_id for result in results))
    return build_export_items(results, contents)


def render_markdown(items: Sequence[ExportItem]) -> str:
    return SECTION_SEPARATOR.join(f"## {item.title}\n\n{item.content}" for item in items)


def export_filename(today: date | None = None) -> str:
    return f"search-results-export-{(today or date.today()).isoformat()}.md"


def write_export(items: Sequence[ExportItem], directory: str | Path, *, today: date | None = None) -> Path | None:
    """Write the selected items as Markdown; nothing is written for an empty selection."""

    if not items:
        return None
    destination = Path(directory) / export_filename(today)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(render_markdown(items), encoding="utf-8")
    _logger.info("export.written", path=str(destination), item_count=len(items))
    return destination
