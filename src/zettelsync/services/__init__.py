"""Service layer orchestrations for zettelsync."""

from .export import build_export_items, load_document_contents, prepare_export, render_markdown, write_export
from .jobs import JobTracker
from .sync import DocumentSync

__all__ = [
    "DocumentSync",
    "JobTracker",
    "build_export_items",
    "load_document_contents",
    "prepare_export",
    "render_markdown",
    "write_export",
]
