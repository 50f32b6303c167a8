import asyncio
import io
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List

import aiohttp
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .config import HTTP_TIMEOUT_SECONDS
from .errors import ExtractionError
from .logging_config import logger

METADATA_SCAN_CHARS = 3000
ABSTRACT_MAX_CHARS = 1500


@dataclass
class PageText:
    page_number: int  # 1-indexed
    text: str


@dataclass
class ExtractedDocument:
    pages: List[PageText] = field(default_factory=list)
    full_text: str = ""

    @property
    def page_count(self) -> int:
        return len(self.pages)


def extract_pdf(data: bytes) -> ExtractedDocument:
    """
    Extract per-page text from PDF bytes.

    Every page keeps its own 1-indexed number so chunks can cite it later.
    Raises ExtractionError when the file cannot be parsed, has no pages,
    or has no extractable text at all.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            # Empty owner password covers most "protected" academic PDFs
            reader.decrypt("")
        pages = []
        for i, page in enumerate(reader.pages, start=1):
            pages.append(PageText(page_number=i, text=page.extract_text() or ""))
    except (PdfReadError, ValueError, KeyError, TypeError, NotImplementedError) as e:
        raise ExtractionError(f"Could not parse PDF: {e}") from e

    if not pages:
        raise ExtractionError("PDF has no pages")

    if not any(p.text.strip() for p in pages):
        raise ExtractionError("PDF has no extractable text")

    full_text = "\n\n".join(p.text for p in pages)
    logger.info("Extracted PDF text", page_count=len(pages), chars=len(full_text))
    return ExtractedDocument(pages=pages, full_text=full_text)


def extract_metadata(full_text: str) -> Dict[str, str]:
    """
    Best-effort title/abstract detection from the start of the document.

    Title: first line of 11-249 characters that does not start with a digit.
    Abstract: the lines following the first line starting with "abstract".
    Only keys that were found are returned.
    """
    head = full_text[:METADATA_SCAN_CHARS]
    lines = [line.strip() for line in re.split(r"\n+", head)]
    lines = [line for line in lines if line]

    metadata: Dict[str, str] = {}
    for i, line in enumerate(lines):
        if "title" not in metadata and 10 < len(line) < 250 and not line[0].isdigit():
            metadata["title"] = line
        if line.lower().startswith("abstract"):
            abstract = " ".join(lines[i + 1:])[:ABSTRACT_MAX_CHARS]
            if abstract:
                metadata["abstract"] = abstract
            break

    return metadata


async def load_paper_bytes(file_url: str) -> bytes:
    """
    Load the raw document from its storage location.
    http(s) URLs are downloaded; anything else is treated as a local path.
    """
    if file_url.startswith(("http://", "https://")):
        timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(file_url, allow_redirects=True) as resp:
                    if resp.status >= 400:
                        raise ExtractionError(f"Failed to fetch PDF: {resp.status}")
                    return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExtractionError(f"Failed to fetch PDF: {e}") from e

    if not os.path.isfile(file_url):
        raise ExtractionError(f"File not found: {file_url}")
    with open(file_url, "rb") as f:
        return f.read()
