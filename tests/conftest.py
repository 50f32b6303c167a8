"""
Shared fixtures. The environment is set before any academialink import so the
engine points at a throwaway SQLite file and the OpenAI client gets a dummy key.
"""
import os
import re
import tempfile
import zlib
from typing import List

_TMP_DIR = tempfile.mkdtemp(prefix="academialink-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest

from academialink.config import EMBED_DIM
from academialink.db import engine
from academialink.models import Base, Paper

WORDS = (
    "retrieval augmented generation grounds language model answers in evidence drawn "
    "from scientific papers with careful chunking overlap embeddings cosine similarity "
    "transformer attention corpus benchmark evaluation ablation dataset citation page"
).split()


@pytest.fixture(autouse=True)
def db_tables():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


def hashed_embedding(text: str) -> List[float]:
    """Deterministic bag-of-words vector: one hashed dimension per word."""
    vec = [0.0] * EMBED_DIM
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        vec[zlib.crc32(word.encode()) % EMBED_DIM] += 1.0
    if not any(vec):
        vec[0] = 1.0
    return vec


def unit_vector(i: int) -> List[float]:
    vec = [0.0] * EMBED_DIM
    vec[i] = 1.0
    return vec


class FakeEmbedder:
    """Async stand-in for embed_text; optionally fails on the n-th call."""

    def __init__(self, fail_on_call=None, exc=None):
        self.calls: List[str] = []
        self.fail_on_call = fail_on_call
        self.exc = exc

    async def __call__(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise self.exc
        return hashed_embedding(text)


def filler_text(length: int, seed: int = 0) -> str:
    """Word text of exactly `length` characters, broken into ~90 character lines."""
    out, line = [], []
    i = seed
    total = 0
    while total < length:
        word = WORDS[i % len(WORDS)]
        i += 7
        line.append(word)
        if sum(len(w) + 1 for w in line) > 90:
            out.append(" ".join(line))
            line = []
        total = sum(len(l) + 1 for l in out) + len(" ".join(line))
    if line:
        out.append(" ".join(line))
    return "\n".join(out)[:length]


def _pdf_escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def make_pdf(pages: List[str]) -> bytes:
    """
    Build a minimal PDF with one Helvetica text line per input line.
    An empty string produces a page without text.
    """
    objects = []  # (number, body bytes)
    page_count = len(pages)
    font_num = 3
    first_page_num = 4
    kids = []
    for idx, text in enumerate(pages):
        page_num = first_page_num + idx * 2
        content_num = page_num + 1
        kids.append(f"{page_num} 0 R")
        ops = ["BT", "/F1 9 Tf", "40 760 Td"]
        for line in text.split("\n") if text else []:
            ops.append(f"({_pdf_escape(line)}) Tj")
            ops.append("0 -11 Td")
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")
        objects.append((page_num, (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 {font_num} 0 R >> >> /Contents {content_num} 0 R >>"
        ).encode()))
        objects.append((content_num, b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"))

    objects.append((1, b"<< /Type /Catalog /Pages 2 0 R >>"))
    objects.append((2, f"<< /Type /Pages /Kids [{' '.join(kids)}] /Count {page_count} >>".encode()))
    objects.append((font_num, b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>"))
    objects.sort(key=lambda o: o[0])

    out = bytearray(b"%PDF-1.4\n")
    offsets = {}
    for num, body in objects:
        offsets[num] = len(out)
        out += f"{num} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_at = len(out)
    size = max(offsets) + 1
    out += f"xref\n0 {size}\n".encode()
    out += b"0000000000 65535 f \n"
    for num in range(1, size):
        out += f"{offsets[num]:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {size} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode()
    return bytes(out)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def pdf_file(tmp_path):
    """Write a PDF built from page texts and return its path."""
    def _write(pages: List[str], name: str = "paper.pdf") -> str:
        path = tmp_path / name
        path.write_bytes(make_pdf(pages))
        return str(path)
    return _write


@pytest.fixture
def three_page_paper(pdf_file):
    """A 3-page paper with ~7000 characters of text per page."""
    header = "Grounded Question Answering Over Scientific Papers\nAbstract\n"
    pages = [
        header + filler_text(7000 - len(header), seed=1),
        filler_text(7000, seed=2),
        filler_text(7000, seed=3),
    ]
    return pdf_file(pages)


@pytest.fixture
def make_paper():
    from academialink.db import SessionLocal

    def _make(file_url=None, user_id="user-1", title="Untitled", meta=None, processed=False) -> str:
        with SessionLocal() as db, db.begin():
            paper = Paper(
                user_id=user_id,
                title=title,
                filename="paper.pdf",
                file_url=file_url,
                processed=processed,
                status="uploaded",
                meta=meta if meta is not None else {},
            )
            db.add(paper)
            db.flush()
            return paper.id
    return _make
