"""
Publication import: pull a researcher's works from ORCID or Semantic Scholar
into their profile.

Records already imported for the user (same title, source and source id)
are skipped, so re-running an import only adds what is new.
"""
import asyncio
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import aiohttp
from sqlalchemy import select

from ..config import HTTP_TIMEOUT_SECONDS
from ..db import SessionLocal
from ..errors import PublicationSourceError
from ..logging_config import logger
from ..models import Publication
from .literature_service import SEMANTIC_SCHOLAR_API, semantic_scholar_headers

ORCID_API = "https://pub.orcid.org/v3.0"
ORCID_ID_RE = re.compile(r"^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$")

AUTHOR_PAPER_FIELDS = "title,authors,year,url,abstract,citationCount,venue,externalIds"
AUTHOR_PAPER_LIMIT = 100


@dataclass
class PublicationRecord:
    title: str
    source: str
    source_id: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    venue: Optional[str] = None
    year: Optional[int] = None
    url: Optional[str] = None
    doi: Optional[str] = None
    abstract: Optional[str] = None
    citation_count: int = 0


@dataclass
class ImportResult:
    total_found: int
    new_added: int
    publications: List[Dict[str, Any]]


# ==================== ORCID ====================

def clean_orcid_id(orcid_id: str) -> str:
    """Accept a bare iD or an orcid.org URL; raise ValueError on anything else."""
    cleaned = re.sub(r"^https?://(www\.)?orcid\.org/", "", (orcid_id or "").strip()).rstrip("/")
    if not ORCID_ID_RE.match(cleaned):
        raise ValueError(f"Invalid ORCID iD: {orcid_id!r}")
    return cleaned


def _value(node: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def parse_orcid_works(data: Dict[str, Any]) -> List[PublicationRecord]:
    """One record per work group, taken from its first (preferred) summary."""
    records = []
    for group in data.get("group") or []:
        summaries = group.get("work-summary") or []
        if not summaries:
            continue
        summary = summaries[0]

        year_value = _value(summary, "publication-date", "year", "value")
        year = int(year_value) if year_value and str(year_value).isdigit() else None

        doi = None
        for ext in _value(summary, "external-ids", "external-id") or []:
            if ext.get("external-id-type") == "doi":
                doi = ext.get("external-id-value")
                break

        put_code = summary.get("put-code")
        records.append(PublicationRecord(
            title=_value(summary, "title", "title", "value") or "Untitled",
            year=year,
            venue=_value(summary, "journal-title", "value"),
            url=_value(summary, "url", "value") or (f"https://doi.org/{doi}" if doi else None),
            doi=doi,
            source="orcid",
            source_id=str(put_code) if put_code is not None else None,
        ))
    return records


async def fetch_orcid_works(session: aiohttp.ClientSession, orcid_id: str) -> List[PublicationRecord]:
    url = f"{ORCID_API}/{clean_orcid_id(orcid_id)}/works"
    logger.info("Fetching ORCID works", url=url)
    try:
        async with session.get(url, headers={"Accept": "application/json"}) as r:
            if r.status != 200:
                raise PublicationSourceError(f"ORCID API error: {r.status}")
            data = await r.json()
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise PublicationSourceError(f"ORCID request failed: {e}") from e
    return parse_orcid_works(data if isinstance(data, dict) else {})


# ==================== Semantic Scholar ====================

def parse_semantic_scholar_papers(data: Dict[str, Any]) -> List[PublicationRecord]:
    records = []
    for paper in data.get("data") or []:
        records.append(PublicationRecord(
            title=paper.get("title") or "Untitled",
            authors=[a.get("name", "") for a in paper.get("authors") or []],
            year=paper.get("year"),
            url=paper.get("url"),
            doi=(paper.get("externalIds") or {}).get("DOI"),
            abstract=paper.get("abstract"),
            citation_count=paper.get("citationCount") or 0,
            venue=paper.get("venue") or None,
            source="semantic_scholar",
            source_id=paper.get("paperId"),
        ))
    return records


async def _get_json(session: aiohttp.ClientSession, url: str, params: Dict[str, str]) -> Any:
    try:
        async with session.get(url, params=params, headers=semantic_scholar_headers()) as r:
            if r.status != 200:
                raise PublicationSourceError(f"Semantic Scholar API error: {r.status}")
            return await r.json()
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise PublicationSourceError(f"Semantic Scholar request failed: {e}") from e


async def fetch_semantic_scholar_publications(
    session: aiohttp.ClientSession, author_name: str
) -> List[PublicationRecord]:
    """Resolve the best-matching author, then list their papers. No match means no papers."""
    logger.info("Searching Semantic Scholar author", author_name=author_name)
    found = await _get_json(
        session, f"{SEMANTIC_SCHOLAR_API}/author/search", {"query": author_name, "limit": "1"}
    )
    authors = found.get("data") if isinstance(found, dict) else None
    if not authors:
        return []

    author_id = authors[0].get("authorId")
    if not author_id:
        return []
    papers = await _get_json(
        session,
        f"{SEMANTIC_SCHOLAR_API}/author/{author_id}/papers",
        {"fields": AUTHOR_PAPER_FIELDS, "limit": str(AUTHOR_PAPER_LIMIT)},
    )
    return parse_semantic_scholar_papers(papers if isinstance(papers, dict) else {})


# ==================== Import & storage ====================

def _dedup_key(title: str, source: str, source_id: Optional[str]) -> Tuple[str, str, str]:
    return (title, source, source_id or "")


def _serialize(pub: Publication) -> Dict[str, Any]:
    return {
        "id": pub.id,
        "user_id": pub.user_id,
        "title": pub.title,
        "authors": list(pub.authors or []),
        "venue": pub.venue,
        "year": pub.year,
        "url": pub.url,
        "doi": pub.doi,
        "abstract": pub.abstract,
        "citation_count": pub.citation_count,
        "source": pub.source,
        "source_id": pub.source_id,
        "created_at": pub.created_at.isoformat() if pub.created_at else None,
    }


async def fetch_publications(
    source: str, orcid_id: Optional[str] = None, author_name: Optional[str] = None
) -> List[PublicationRecord]:
    """
    Raises:
        ValueError: unknown source or missing identifier for it
        PublicationSourceError: the source could not be read
    """
    if source == "orcid" and orcid_id:
        fetch, arg = fetch_orcid_works, clean_orcid_id(orcid_id)
    elif source == "semantic_scholar" and author_name and author_name.strip():
        fetch, arg = fetch_semantic_scholar_publications, author_name.strip()
    else:
        raise ValueError("Invalid source or missing required parameters")

    timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        return await fetch(session, arg)


def save_new_publications(user_id: str, records: List[PublicationRecord]) -> List[Dict[str, Any]]:
    """Insert records not yet stored for the user; duplicates within the batch count once."""
    with SessionLocal() as db, db.begin():
        existing = db.execute(
            select(Publication.title, Publication.source, Publication.source_id)
            .where(Publication.user_id == user_id)
        ).all()
        seen: Set[Tuple[str, str, str]] = {_dedup_key(*row) for row in existing}

        added = []
        for rec in records:
            key = _dedup_key(rec.title, rec.source, rec.source_id)
            if key in seen:
                continue
            seen.add(key)
            pub = Publication(user_id=user_id, **asdict(rec))
            db.add(pub)
            added.append(pub)
        db.flush()
        return [_serialize(p) for p in added]


async def import_publications(
    user_id: str,
    source: str,
    orcid_id: Optional[str] = None,
    author_name: Optional[str] = None,
) -> ImportResult:
    records = await fetch_publications(source, orcid_id=orcid_id, author_name=author_name)
    added = save_new_publications(user_id, records)
    logger.info("Publications imported", user_id=user_id, source=source,
                total_found=len(records), new_added=len(added))
    return ImportResult(total_found=len(records), new_added=len(added), publications=added)


def list_publications(user_id: str) -> List[Dict[str, Any]]:
    """Newest year first (undated last), then most recently imported."""
    with SessionLocal() as db:
        rows = db.execute(
            select(Publication)
            .where(Publication.user_id == user_id)
            .order_by(Publication.year.desc().nulls_last(), Publication.created_at.desc())
        ).scalars().all()
        return [_serialize(p) for p in rows]


def delete_publication(publication_id: str, user_id: str) -> bool:
    with SessionLocal() as db, db.begin():
        pub = db.get(Publication, publication_id)
        if pub is None or pub.user_id != user_id:
            return False
        db.delete(pub)
    return True
