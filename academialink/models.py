import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship
from pgvector.sqlalchemy import Vector

from .config import EMBED_DIM

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Paper(Base):
    __tablename__ = "papers"
    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    title = Column(Text, nullable=False)
    filename = Column(Text, nullable=False)
    file_url = Column(Text)
    file_size = Column(Integer)
    page_count = Column(Integer)
    processed = Column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSONType)
    status = Column(String, nullable=False, default="uploaded")
    processing_error = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    chunks = relationship("PaperChunk", back_populates="paper", cascade="all, delete-orphan",
                          order_by="PaperChunk.chunk_index")
    conversations = relationship("PaperConversation", back_populates="paper",
                                 cascade="all, delete-orphan")


class PaperChunk(Base):
    __tablename__ = "paper_chunks"
    id = Column(String, primary_key=True, default=_uuid)
    paper_id = Column(String, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    chunk_text = Column(Text, nullable=False)
    page_number = Column(Integer)
    embedding = Column(Vector(EMBED_DIM), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    paper = relationship("Paper", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("paper_id", "chunk_index", name="uq_paper_chunks_paper_index"),
    )


class PaperConversation(Base):
    __tablename__ = "paper_conversations"
    id = Column(String, primary_key=True, default=_uuid)
    paper_id = Column(String, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, nullable=False)
    title = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    paper = relationship("Paper", back_populates="conversations")
    messages = relationship("PaperMessage", back_populates="conversation",
                            cascade="all, delete-orphan",
                            order_by="PaperMessage.created_at")

    __table_args__ = (
        Index("ix_paper_conversations_paper_user", "paper_id", "user_id"),
    )


class PaperMessage(Base):
    __tablename__ = "paper_messages"
    id = Column(String, primary_key=True, default=_uuid)
    conversation_id = Column(String, ForeignKey("paper_conversations.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    role = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    # Plain ids, not a foreign key: chunks can be replaced while history keeps its citations
    chunks_used = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    conversation = relationship("PaperConversation", back_populates="messages")


class Publication(Base):
    __tablename__ = "publications"
    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    title = Column(Text, nullable=False)
    authors = Column(JSONType, nullable=False, default=list)
    venue = Column(Text)
    year = Column(Integer)
    url = Column(Text)
    doi = Column(Text)
    abstract = Column(Text)
    citation_count = Column(Integer, nullable=False, default=0)
    # "orcid" | "semantic_scholar"; source_id is the ORCID put-code or the S2 paperId
    source = Column(String, nullable=False)
    source_id = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
