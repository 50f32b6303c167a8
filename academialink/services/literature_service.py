"""
Research assistant: multi-source literature search, deduplication and
LLM-generated project ideas.

Semantic Scholar, arXiv and Hugging Face are queried concurrently. A failing
source contributes an empty list; it never fails the whole request.
"""
import asyncio
import json
import re
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import HTTP_TIMEOUT_SECONDS, SEMANTIC_SCHOLAR_API_KEY
from ..errors import GenerationError
from ..logging_config import logger
from ..openai_client import complete_chat

SEMANTIC_SCHOLAR_API = "https://api.semanticscholar.org/graph/v1"
SEMANTIC_SCHOLAR_URL = f"{SEMANTIC_SCHOLAR_API}/paper/search"
ARXIV_URL = "https://export.arxiv.org/api/query"
HUGGINGFACE_DATASETS_URL = "https://huggingface.co/api/datasets"

SEMANTIC_SCHOLAR_FIELDS = "title,authors,abstract,year,citationCount,venue,url,externalIds"
ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}

SOURCE_LIMIT = 10
TOP_PAPERS = 10
TOP_DATASETS = 10


@dataclass
class LiteraturePaper:
    title: str
    source: str
    authors: List[str] = field(default_factory=list)
    url: str = ""
    abstract: str = ""
    year: Optional[int] = None
    citation_count: Optional[int] = None
    venue: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "authors": self.authors,
            "url": self.url,
            "abstract": self.abstract,
            "year": self.year,
            "citationCount": self.citation_count,
            "venue": self.venue,
            "source": self.source,
        }


@dataclass
class Dataset:
    name: str
    description: str
    url: str
    downloads: int = 0
    likes: int = 0


@dataclass
class ResearchResult:
    topic: str
    papers: List[Dict] = field(default_factory=list)
    project_ideas: List[Dict] = field(default_factory=list)
    outline: Dict = field(default_factory=lambda: {"sections": []})
    datasets: List[Dict] = field(default_factory=list)
    libraries: List[Dict] = field(default_factory=list)


# ==================== Dedup & ranking ====================

def normalize_title(title: str) -> str:
    """Lower-case and drop everything that is not a-z or 0-9."""
    return re.sub(r"[^a-z0-9]", "", (title or "").lower())


def _has_more_citations(candidate: LiteraturePaper, existing: LiteraturePaper) -> bool:
    if candidate.citation_count is None:
        return False
    if existing.citation_count is None:
        return True
    return candidate.citation_count > existing.citation_count


def deduplicate_papers(papers: List[LiteraturePaper]) -> List[LiteraturePaper]:
    """
    Keep one record per normalized title, preferring the higher citation count.
    A missing count loses to any present count; on a tie the first record wins.
    First-seen order of keys is preserved.
    """
    seen: Dict[str, LiteraturePaper] = {}
    for paper in papers:
        key = normalize_title(paper.title)
        if key not in seen or _has_more_citations(paper, seen[key]):
            seen[key] = paper
    return list(seen.values())


def rank_papers(papers: List[LiteraturePaper]) -> List[LiteraturePaper]:
    """
    Citation count descending; papers without a count come after, by year descending.
    """
    with_count = [p for p in papers if p.citation_count is not None]
    without_count = [p for p in papers if p.citation_count is None]
    with_count.sort(key=lambda p: p.citation_count, reverse=True)
    without_count.sort(key=lambda p: p.year or 0, reverse=True)
    return with_count + without_count


# ==================== Sources ====================

def semantic_scholar_headers() -> Dict[str, str]:
    headers = {"Accept": "application/json"}
    if SEMANTIC_SCHOLAR_API_KEY:
        headers["x-api-key"] = SEMANTIC_SCHOLAR_API_KEY
    return headers


async def search_semantic_scholar(
    session: aiohttp.ClientSession, query: str, limit: int = SOURCE_LIMIT
) -> List[LiteraturePaper]:
    logger.info("Searching Semantic Scholar", query=query)
    headers = semantic_scholar_headers()
    params = {"query": query, "limit": str(limit), "fields": SEMANTIC_SCHOLAR_FIELDS}
    try:
        async with session.get(SEMANTIC_SCHOLAR_URL, params=params, headers=headers) as r:
            if r.status != 200:
                logger.error("Semantic Scholar API error", status=r.status)
                return []
            data = await r.json()
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.error("Semantic Scholar search error", error=str(e))
        return []

    items = data.get("data") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return []

    papers = []
    for item in items:
        doi = (item.get("externalIds") or {}).get("DOI")
        papers.append(LiteraturePaper(
            title=item.get("title") or "Untitled",
            authors=[a.get("name", "") for a in item.get("authors") or []],
            url=item.get("url") or (f"https://doi.org/{doi}" if doi else ""),
            abstract=item.get("abstract") or "",
            year=item.get("year"),
            citation_count=item.get("citationCount"),
            venue=item.get("venue") or "",
            source="semantic_scholar",
        ))
    return papers


def parse_arxiv_feed(xml_text: str) -> List[LiteraturePaper]:
    """Parse an arXiv Atom feed into papers. arXiv reports no citation counts."""
    root = ET.fromstring(xml_text)
    papers = []
    for entry in root.findall("atom:entry", ATOM_NS):
        title = " ".join((entry.findtext("atom:title", "", ATOM_NS) or "").split())
        abstract = " ".join((entry.findtext("atom:summary", "", ATOM_NS) or "").split())
        published = entry.findtext("atom:published", "", ATOM_NS) or ""
        year = int(published[:4]) if published[:4].isdigit() else None
        authors = [
            (a.findtext("atom:name", "", ATOM_NS) or "").strip()
            for a in entry.findall("atom:author", ATOM_NS)
        ]
        url = ""
        for link in entry.findall("atom:link", ATOM_NS):
            href = link.get("href", "")
            if href.startswith("https://arxiv.org/abs/") or href.startswith("http://arxiv.org/abs/"):
                url = href
                break
        if not url:
            url = (entry.findtext("atom:id", "", ATOM_NS) or "").strip()

        if title and url:
            papers.append(LiteraturePaper(
                title=title, authors=authors, url=url, abstract=abstract,
                year=year, source="arxiv",
            ))
    return papers


async def search_arxiv(
    session: aiohttp.ClientSession, query: str, limit: int = SOURCE_LIMIT
) -> List[LiteraturePaper]:
    logger.info("Searching arXiv", query=query)
    params = {
        "search_query": f"all:{query}",
        "start": "0",
        "max_results": str(limit),
        "sortBy": "relevance",
        "sortOrder": "descending",
    }
    try:
        async with session.get(ARXIV_URL, params=params) as r:
            if r.status != 200:
                logger.error("arXiv API error", status=r.status)
                return []
            xml_text = await r.text()
        return parse_arxiv_feed(xml_text)
    except (aiohttp.ClientError, asyncio.TimeoutError, ET.ParseError) as e:
        logger.error("arXiv search error", error=str(e))
        return []


async def search_huggingface_datasets(
    session: aiohttp.ClientSession, query: str, limit: int = SOURCE_LIMIT
) -> List[Dataset]:
    logger.info("Searching Hugging Face datasets", query=query)
    params = {"search": query, "limit": str(limit), "sort": "downloads", "direction": "-1"}
    try:
        async with session.get(HUGGINGFACE_DATASETS_URL, params=params) as r:
            if r.status != 200:
                logger.error("Hugging Face API error", status=r.status)
                return []
            data = await r.json()
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.error("Hugging Face search error", error=str(e))
        return []

    if not isinstance(data, list):
        return []
    return [
        Dataset(
            name=d.get("id") or "Unknown",
            description=d.get("description")
            or (d.get("cardData") or {}).get("description")
            or f"Dataset for {query}",
            url=f"https://huggingface.co/datasets/{d.get('id')}",
            downloads=d.get("downloads") or 0,
            likes=d.get("likes") or 0,
        )
        for d in data
    ]


# ==================== Project ideas (LLM) ====================

def fallback_research_plan(topic: str) -> Dict[str, Any]:
    return {
        "project_ideas": [
            {
                "title": f"Novel Approach to {topic}",
                "description": "Explore innovative methods combining recent advances in the field. "
                               "Focus on addressing current limitations identified in the literature.",
                "methodology": "Literature review, prototype development, empirical evaluation",
            },
            {
                "title": f"Benchmark Study for {topic}",
                "description": "Create a comprehensive benchmark comparing existing approaches. "
                               "Identify gaps and propose improvements.",
                "methodology": "Systematic comparison, statistical analysis, ablation studies",
            },
        ],
        "outline": {
            "sections": [
                {"title": "Introduction", "description": "Background, motivation, and research questions"},
                {"title": "Related Work", "description": "Survey of existing approaches and their limitations"},
                {"title": "Methodology", "description": "Proposed approach and technical details"},
                {"title": "Experiments", "description": "Experimental setup, datasets, and evaluation metrics"},
                {"title": "Results", "description": "Quantitative and qualitative results"},
                {"title": "Discussion", "description": "Analysis of findings and implications"},
                {"title": "Conclusion", "description": "Summary and future directions"},
            ]
        },
        "libraries": [
            {"name": "PyTorch", "description": "Deep learning framework for building neural networks",
             "url": "https://pytorch.org"},
            {"name": "Hugging Face Transformers", "description": "State-of-the-art NLP models and tools",
             "url": "https://huggingface.co/transformers"},
            {"name": "scikit-learn", "description": "Machine learning library for classical algorithms",
             "url": "https://scikit-learn.org"},
        ],
    }


def strip_code_fences(content: str) -> str:
    text = content.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _plan_prompt(topic: str, papers: List[LiteraturePaper], datasets: List[Dataset]) -> str:
    paper_lines = "\n".join(
        f'- "{p.title}" ({p.year or "n.d."}): {(p.abstract or "")[:200]}...' for p in papers[:5]
    )
    dataset_lines = "\n".join(f"- {d.name}: {(d.description or '')[:100]}..." for d in datasets[:5])
    return f"""Based on the research topic: "{topic}"

Here are relevant papers found:
{paper_lines or 'No papers found yet.'}

Here are relevant datasets:
{dataset_lines or 'No specific datasets found.'}

Generate a JSON object with:
1. "project_ideas": 3-4 specific, actionable research project ideas, each with
   "title", "description" (2-3 sentences) and "methodology".
2. "outline": an object with a "sections" array of 6-8 entries, each with "title" and "description".
3. "libraries": 4-6 relevant Python/ML libraries, each with "name", "description" and "url".

Respond ONLY with valid JSON, no markdown code blocks."""


async def generate_research_plan(
    topic: str, papers: List[LiteraturePaper], datasets: List[Dataset]
) -> Dict[str, Any]:
    """LLM-generated ideas, outline and libraries; static fallback on any failure."""
    messages = [
        {"role": "system", "content": "You are a research advisor helping generate project ideas "
                                      "and paper outlines. Respond with valid JSON only."},
        {"role": "user", "content": _plan_prompt(topic, papers, datasets)},
    ]
    try:
        content = await complete_chat(messages, temperature=0.7)
        parsed = json.loads(strip_code_fences(content))
        if not isinstance(parsed, dict):
            raise ValueError("Expected a JSON object")
    except (GenerationError, ValueError) as e:
        logger.warning("Research plan generation failed; using fallback", error=str(e))
        return fallback_research_plan(topic)

    outline = parsed.get("outline")
    if not isinstance(outline, dict):
        outline = {"sections": []}
    return {
        "project_ideas": parsed.get("project_ideas") or [],
        "outline": outline,
        "libraries": parsed.get("libraries") or [],
    }


# ==================== Entry point ====================

async def aggregate_literature(query: str, session: aiohttp.ClientSession):
    """
    Fan out to all sources and join. Returns (ranked unique papers, datasets).
    """
    results = await asyncio.gather(
        search_semantic_scholar(session, query),
        search_arxiv(session, query),
        search_huggingface_datasets(session, query),
        return_exceptions=True,
    )
    semantic, arxiv, datasets = [
        [] if isinstance(r, BaseException) else r for r in results
    ]
    for r in results:
        if isinstance(r, BaseException):
            logger.error("Literature source raised", error=str(r))

    logger.info("Literature sources returned",
                semantic_scholar=len(semantic), arxiv=len(arxiv), datasets=len(datasets))

    papers = rank_papers(deduplicate_papers(semantic + arxiv))
    return papers[:TOP_PAPERS], datasets[:TOP_DATASETS]


async def research_topic(query: str) -> ResearchResult:
    timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        papers, datasets = await aggregate_literature(query, session)

    plan = await generate_research_plan(query, papers, datasets)

    return ResearchResult(
        topic=query,
        papers=[p.to_dict() for p in papers],
        project_ideas=plan["project_ideas"],
        outline=plan["outline"],
        datasets=[{"name": d.name, "description": d.description, "url": d.url} for d in datasets],
        libraries=plan["libraries"],
    )


def research_result_to_dict(result: ResearchResult) -> Dict[str, Any]:
    return asdict(result)
