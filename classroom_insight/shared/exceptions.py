"""
Exception hierarchy for the classroom insight engine.
"""


class InsightError(Exception):
    """Base exception for all insight engine errors."""
    pass


class ConfigurationError(InsightError):
    """Raised when a required setting or data file is missing or invalid."""
    pass


class LexiconError(ConfigurationError):
    """Raised when a phrase lexicon cannot be loaded."""
    pass


class StorageError(InsightError):
    """Raised when a read or write against the relational store fails."""
    pass


class ClassroomNotFoundError(InsightError):
    """Raised when a classroom does not exist or is not owned by the requester."""

    def __init__(self, classroom_id: str, requester_id: str):
        self.classroom_id = classroom_id
        self.requester_id = requester_id
        super().__init__(
            f"Classroom {classroom_id} not found or not owned by {requester_id}"
        )


class SessionNotFoundError(StorageError):
    """Raised when a tutoring session does not exist."""
    pass


class EnrichmentError(InsightError):
    """Raised when semantic memory enrichment fails."""
    pass


class EmbeddingError(EnrichmentError):
    """Raised when an embedding request fails."""
    pass


class UpstreamGenerationError(InsightError):
    """Raised when the text-generation service fails or is misconfigured."""
    pass


class DiagnosticParseError(InsightError):
    """Raised when no JSON object can be recovered from a diagnostic response."""

    def __init__(self, message: str, raw_response: str = ""):
        self.raw_response = raw_response
        super().__init__(message)
