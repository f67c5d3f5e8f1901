"""
Extractor Registry — Text Extraction from Curriculum Files
══════════════════════════════════════════════════════════

Design: Strategy + Registry
───────────────────────────
Each strategy declares the file-type tags it handles and turns one file on
disk into raw text. The registry maps the normalized tag (lower-cased, no
leading dot) to a strategy; new formats are added with register(), the
dispatcher itself never changes.

  pdf   PdfExtractor        pypdf, page by page in order (bounded memory)
  docx  DocxExtractor       python-docx paragraphs + table cells
  doc   LegacyDocExtractor  python-docx first, raw byte decode as fallback

Failure modes (all subclasses of PipelineError):
  UnsupportedTypeError  tag has no registered strategy
  NotFoundError         resolved path does not exist
  ExtractionError       parser failed; wraps the underlying reason

Strategies are blocking; callers on the event loop run extract() in a
worker thread (see MaterialProcessor).
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from curriculum_pipeline.core.errors import (
    ExtractionError,
    NotFoundError,
    PipelineError,
    UnsupportedTypeError,
)
from curriculum_pipeline.processing.loader import LazyLibrary
from curriculum_pipeline.processing.normalizer import strip_control_chars

logger = logging.getLogger(__name__)


def normalize_file_type(file_type: str) -> str:
    """'.PDF ' → 'pdf'"""
    return (file_type or "").strip().lower().lstrip(".")


# ---------------------------------------------------------------------------
# Abstract strategy
# ---------------------------------------------------------------------------

class ExtractionStrategy(ABC):
    """
    Abstract base for extraction strategies.

    All implementations:
      - Receive an already-resolved, existing path
      - Return raw (un-normalized) text
      - Raise ExtractionError when the document cannot be converted
    """

    @property
    @abstractmethod
    def file_types(self) -> tuple[str, ...]:
        """Normalized tags this strategy handles."""

    @abstractmethod
    def extract(self, path: Path) -> str:
        """Convert the document at `path` into raw text."""


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

class PdfExtractor(ExtractionStrategy):
    """
    Reads the native text layer with pypdf.

    Pages are visited in order starting at 1. Within a page the text
    fragments reported by the content-stream visitor are joined with a single
    space; pages are joined with a newline. One unreadable page aborts the
    whole document.
    """

    def __init__(self, library: LazyLibrary) -> None:
        self._library = library

    @property
    def file_types(self) -> tuple[str, ...]:
        return ("pdf",)

    def extract(self, path: Path) -> str:
        pypdf = self._library.get()
        try:
            reader = pypdf.PdfReader(str(path))
        except Exception as exc:
            raise ExtractionError(f"Failed to extract text from PDF: {exc}") from exc

        page_texts: list[str] = []
        for page_number, page in enumerate(reader.pages, start=1):
            try:
                page_texts.append(self._page_text(page))
            except Exception as exc:
                raise ExtractionError(
                    f"Failed to extract text from PDF: page {page_number}: {exc}"
                ) from exc

        logger.info("PDF extracted | file=%s pages=%d", path.name, len(page_texts))
        return "\n".join(page_texts)

    @staticmethod
    def _page_text(page) -> str:
        fragments: list[str] = []

        def _collect(text, *_):
            if text:
                fragments.append(text)

        page.extract_text(visitor_text=_collect)
        return " ".join(fragments)


# ---------------------------------------------------------------------------
# DOCX / DOC
# ---------------------------------------------------------------------------

class DocxExtractor(ExtractionStrategy):
    """Plain-text conversion of an Office Open XML document with python-docx."""

    def __init__(self, library: LazyLibrary) -> None:
        self._library = library

    @property
    def file_types(self) -> tuple[str, ...]:
        return ("docx",)

    def extract(self, path: Path) -> str:
        try:
            return self.convert(path)
        except Exception as exc:
            raise ExtractionError(f"Failed to extract text from DOCX: {exc}") from exc

    def convert(self, path: Path) -> str:
        """Raw conversion; lets the parser's own exception through."""
        docx = self._library.get()
        document = docx.Document(str(path))

        lines = [para.text for para in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                lines.append(" ".join(cell.text for cell in row.cells))
        return "\n".join(lines)


class LegacyDocExtractor(ExtractionStrategy):
    """
    Legacy binary .doc files.

    Tries the DOCX conversion first (some .doc uploads are really OOXML);
    otherwise decodes the raw bytes as UTF-8 with replacement characters
    and blanks out control bytes (OLE headers, NUL padding).
    Only an unreadable file fails this strategy.
    """

    def __init__(self, converter: DocxExtractor) -> None:
        self._converter = converter

    @property
    def file_types(self) -> tuple[str, ...]:
        return ("doc",)

    def extract(self, path: Path) -> str:
        try:
            return self._converter.convert(path)
        except Exception as exc:
            logger.info(
                "DOC conversion failed, falling back to raw decode | file=%s error=%s",
                path.name, exc,
            )

        try:
            raw = path.read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            raise ExtractionError(f"Failed to extract text from DOC: {exc}") from exc
        return strip_control_chars(raw)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ExtractorRegistry:
    """
    Tag → strategy table plus upload path resolution.

    Usage:
        registry = build_default_registry(upload_root="uploads/curriculum")
        raw_text = registry.extract("lesson-01.pdf", "PDF")
    """

    def __init__(
        self,
        upload_root: str | os.PathLike,
        strategies:  Iterable[ExtractionStrategy] = (),
    ) -> None:
        self._upload_root = Path(upload_root)
        self._strategies: dict[str, ExtractionStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: ExtractionStrategy) -> None:
        for file_type in strategy.file_types:
            self._strategies[normalize_file_type(file_type)] = strategy

    @property
    def supported_types(self) -> frozenset[str]:
        return frozenset(self._strategies)

    def strategy_for(self, file_type: str) -> ExtractionStrategy:
        strategy = self._strategies.get(normalize_file_type(file_type))
        if strategy is None:
            raise UnsupportedTypeError(file_type)
        return strategy

    def resolve_path(self, file_path: str | os.PathLike) -> Path:
        """
        Absolute paths are used as-is; anything else is looked up by its
        base name under the upload root.
        """
        path = Path(file_path)
        if not path.is_absolute():
            path = self._upload_root / path.name
        if not path.is_file():
            raise NotFoundError(f"File not found: {path}")
        return path

    def extract(self, file_path: str | os.PathLike, file_type: str) -> str:
        strategy = self.strategy_for(file_type)
        path = self.resolve_path(file_path)

        t0 = time.monotonic()
        try:
            raw_text = strategy.extract(path)
        except PipelineError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Failed to extract text: {exc}") from exc

        logger.info(
            "Extraction | type=%s file=%s chars=%d elapsed_ms=%.0f",
            normalize_file_type(file_type), path.name, len(raw_text),
            (time.monotonic() - t0) * 1000,
        )
        return raw_text


def build_default_registry(upload_root: str | os.PathLike) -> ExtractorRegistry:
    """Registry with the pdf, docx and doc strategies and their lazy libraries."""
    docx_extractor = DocxExtractor(LazyLibrary("docx"))
    return ExtractorRegistry(
        upload_root,
        strategies=[
            PdfExtractor(LazyLibrary("pypdf")),
            docx_extractor,
            LegacyDocExtractor(docx_extractor),
        ],
    )
