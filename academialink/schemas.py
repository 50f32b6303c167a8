"""
Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant"]


# ==================== Papers ====================

class PaperCreate(BaseModel):
    """Register a paper whose file is held by the storage collaborator."""
    user_id: str = Field(..., min_length=1)
    title: Optional[str] = None
    filename: str = Field(..., min_length=1)
    file_url: str = Field(..., min_length=1)
    file_size: Optional[int] = None


class PaperOut(BaseModel):
    """Paper record as seen by the client poller."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    filename: str
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    page_count: Optional[int] = None
    processed: bool
    status: str
    processing_error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    chunk_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProcessPaperBody(BaseModel):
    """Ingestion trigger."""
    paper_id: str = Field(..., min_length=1)
    wait: bool = Field(False, description="Run inline and return the ingestion result")


class IngestionResultOut(BaseModel):
    paper_id: str
    success: bool
    chunks_count: int = 0
    page_count: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


# ==================== Paper chat ====================

class ChatBody(BaseModel):
    """Question about one paper."""
    paper_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, description="The question to ask")
    user_id: Optional[str] = Field(None, description="Asking user; defaults to the paper's owner")
    conversation_id: Optional[str] = Field(None, description="Existing conversation or None for a new one")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message must not be blank")
        return v


class SourceChunk(BaseModel):
    id: str
    page_number: Optional[int] = None
    chunk_text: str


class ChatResponse(BaseModel):
    response: str
    chunks_used: List[str]
    chunks: List[SourceChunk]
    grounded: bool
    conversation_id: str


# ==================== Secondary AI features ====================

class MatchScoreBody(BaseModel):
    profileFields: Dict[str, Any] = Field(default_factory=dict)
    postFields: Dict[str, Any] = Field(default_factory=dict)


class MatchScoreOut(BaseModel):
    keyword_score: int
    skills_score: float
    proximity_score: float
    llm_score: float
    overall_score: float
    reason: str


class ResearchBody(BaseModel):
    prompt: str = Field(..., min_length=1, description="Free-text research topic")


class ColdEmailBody(BaseModel):
    recipient_name: str = Field(..., min_length=1)
    recipient_type: str = "professor"
    recipient_email: Optional[str] = None
    opportunity_context: str = ""
    tone: str = "professional"
    user_profile: Optional[Dict[str, Any]] = None


class ColdEmailOut(BaseModel):
    subject: str
    body: str


class ChatTurn(BaseModel):
    """Represents a single turn in a conversation."""
    role: Role
    content: str


class LabAssistantBody(BaseModel):
    messages: List[ChatTurn] = Field(..., min_length=1)


# ==================== Publications ====================

class PublicationImportBody(BaseModel):
    """Import a researcher's works; orcid_id or author_name depending on source."""
    user_id: str = Field(..., min_length=1)
    source: Literal["orcid", "semantic_scholar"]
    orcid_id: Optional[str] = None
    author_name: Optional[str] = None


class PublicationImportOut(BaseModel):
    success: bool = True
    total_found: int
    new_added: int
    publications: List[Dict[str, Any]]
