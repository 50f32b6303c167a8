"""
Error types raised by the ingestion and AI services.
Routes translate these into HTTP responses.
"""


class AcademiaLinkError(Exception):
    """Base exception for the AcademiaLink backend."""
    pass


class PaperNotFoundError(AcademiaLinkError):
    """Raised when a paper id does not exist."""
    pass


class IngestionError(AcademiaLinkError):
    """Raised when a paper cannot be ingested."""
    pass


class ExtractionError(IngestionError):
    """Raised when a document cannot be read or has no extractable text."""
    pass


class EmbeddingError(IngestionError):
    """Raised when the embedding provider fails or returns an unusable vector."""
    pass


class GenerationError(AcademiaLinkError):
    """Raised when the generation model call fails."""
    pass


class PublicationSourceError(AcademiaLinkError):
    """Raised when ORCID or Semantic Scholar cannot be read during a publication import."""
    pass
