"""
Document collaborator: turns uploaded study material into plain text.

The core only consumes the extracted text as topic-mapping context, so this
module has no opinion on formats beyond what an extractor declares.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Protocol

from loguru import logger


class UnsupportedDocument(Exception):
    """No extractor handles this file type."""


@dataclass(frozen=True)
class StudyDocument:
    name: str
    text: str


class DocumentExtractor(Protocol):
    extensions: ClassVar[tuple[str, ...]]

    def extract(self, path: Path) -> str:
        ...


class PlainTextExtractor:
    """Reads text and markdown notes as-is."""

    extensions: ClassVar[tuple[str, ...]] = (".txt", ".md")

    def extract(self, path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="replace")


def load_documents(
    paths: list[Path],
    extractors: list[DocumentExtractor] | None = None,
) -> list[StudyDocument]:
    """Extract every path, raising UnsupportedDocument for unknown types."""
    extractors = extractors or [PlainTextExtractor()]
    documents = []
    for path in paths:
        suffix = path.suffix.lower()
        extractor = next((e for e in extractors if suffix in e.extensions), None)
        if extractor is None:
            raise UnsupportedDocument(f"Unsupported document type: {path.name}")
        text = extractor.extract(path)
        logger.debug(f"Extracted {len(text)} chars from {path.name}")
        documents.append(StudyDocument(name=path.name, text=text))
    return documents
