"""
Pydantic models for Vertex AI RAG API responses.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


# --- Operation Models ---

class OperationError(BaseModel):
    """Server-reported failure of a long-running operation."""

    code: int = Field(0, description="google.rpc.Code value")
    message: str = Field("", description="Human-readable message")
    details: list[dict[str, Any]] = Field(default_factory=list, description="Additional details")


class Operation(BaseModel):
    """A long-running operation as returned by the operations endpoint."""

    name: str = Field(..., description="Server-assigned operation name")
    done: bool = Field(False, description="True once the operation reached a terminal state")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Operation metadata")
    response: Optional[dict[str, Any]] = Field(None, description="Result payload on success")
    error: Optional[OperationError] = Field(None, description="Failure details")

    @property
    def progress_percentage(self) -> Optional[float]:
        """Import progress, when the service reports it."""
        value = self.metadata.get("progressPercentage")
        return float(value) if value is not None else None


# --- Corpus Models ---

class RagCorpus(BaseModel):
    """A document corpus."""

    name: str = Field(..., description="Full resource name")
    display_name: str = Field("", description="Display name")
    description: Optional[str] = Field(None, description="Corpus description")
    create_time: Optional[str] = Field(None, description="Creation timestamp")
    update_time: Optional[str] = Field(None, description="Last update timestamp")

    @property
    def corpus_id(self) -> str:
        return self.name.rsplit("/", 1)[-1]


class RagCorpusList(BaseModel):
    """One page of corpora."""

    corpora: list[RagCorpus] = Field(default_factory=list, description="Corpora")
    next_page_token: Optional[str] = Field(None, description="Token for the next page")


# --- File Models ---

class RagFile(BaseModel):
    """A file stored in a corpus."""

    name: str = Field(..., description="Full resource name")
    display_name: str = Field("", description="Display name")
    description: Optional[str] = Field(None, description="File description")
    source_uri: Optional[str] = Field(None, description="GCS URI the file was imported from")
    create_time: Optional[str] = Field(None, description="Creation timestamp")
    update_time: Optional[str] = Field(None, description="Last update timestamp")


class RagFileList(BaseModel):
    """One page of files."""

    files: list[RagFile] = Field(default_factory=list, description="Files")
    next_page_token: Optional[str] = Field(None, description="Token for the next page")


class UploadResponse(BaseModel):
    """Direct upload response."""

    rag_file: RagFile = Field(..., description="The uploaded file")


# --- Terminal operation payloads ---

class CorpusCreated(BaseModel):
    """Result of a finished corpus creation."""

    kind: Literal["create_corpus"] = "create_corpus"
    corpus: RagCorpus


class CorpusDeleted(BaseModel):
    """Result of a finished corpus deletion."""

    kind: Literal["delete_corpus"] = "delete_corpus"


class FilesImported(BaseModel):
    """Result of a finished file import."""

    kind: Literal["import_files"] = "import_files"
    imported_rag_files_count: int = Field(0, description="Files imported")
    failed_rag_files_count: int = Field(0, description="Files that failed to import")
    skipped_rag_files_count: int = Field(0, description="Files skipped as unchanged")


OperationResult = Annotated[
    Union[CorpusCreated, CorpusDeleted, FilesImported],
    Field(discriminator="kind"),
]


# --- Retrieval Models ---

class RetrievedContext(BaseModel):
    """A single retrieved context."""

    text: str = Field("", description="Context text")
    source_uri: Optional[str] = Field(None, description="Source document URI")
    source_display_name: Optional[str] = Field(None, description="Source display name")
    distance: Optional[float] = Field(None, description="Vector distance")
    score: Optional[float] = Field(None, description="Relevance score")


class RetrievalResponse(BaseModel):
    """retrieveContexts response."""

    query: str = Field(..., description="Original query")
    contexts: list[RetrievedContext] = Field(default_factory=list, description="Retrieved contexts")


# --- Generation Models ---

class Candidate(BaseModel):
    """A generated candidate."""

    index: int = Field(0, description="Candidate index")
    text: str = Field("", description="Concatenated text parts")
    finish_reason: Optional[str] = Field(None, description="Why generation stopped")
    grounding_metadata: Optional[dict[str, Any]] = Field(None, description="Retrieval grounding")


class GenerateContentResponse(BaseModel):
    """generateContent response with retrieval tooling."""

    candidates: list[Candidate] = Field(default_factory=list, description="Candidates")
    usage: Optional[dict[str, int]] = Field(None, description="Token usage")
    model_version: Optional[str] = Field(None, description="Model version that answered")

    @property
    def text(self) -> str:
        return self.candidates[0].text if self.candidates else ""


# --- Error Models ---

class APIError(BaseModel):
    """Structured Google API error envelope."""

    code: int = Field(..., description="HTTP status code")
    message: str = Field(..., description="Human-readable message")
    status: Optional[str] = Field(None, description="Canonical status, e.g. NOT_FOUND")
    details: list[dict[str, Any]] = Field(default_factory=list, description="Additional details")


class VertexRagException(Exception):
    """Exception raised for Vertex AI RAG API errors."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error: Optional[APIError] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [f"[{self.status_code}] {self.message}"]
        if self.request_id:
            parts.append(f"(Request ID: {self.request_id})")
        return " ".join(parts)

    @property
    def is_rate_limited(self) -> bool:
        """Check if this is a rate limit error."""
        return self.status_code == 429

    @property
    def is_auth_error(self) -> bool:
        """Check if this is an authentication error."""
        return self.status_code in (401, 403)

    @property
    def is_retryable(self) -> bool:
        """Check if this error is worth retrying."""
        return self.status_code in (429, 500, 502, 503, 504)


# google.rpc.Code -> HTTP status, per google/rpc/code.proto
RPC_TO_HTTP_STATUS = {
    1: 499,   # CANCELLED
    2: 500,   # UNKNOWN
    3: 400,   # INVALID_ARGUMENT
    4: 504,   # DEADLINE_EXCEEDED
    5: 404,   # NOT_FOUND
    6: 409,   # ALREADY_EXISTS
    7: 403,   # PERMISSION_DENIED
    8: 429,   # RESOURCE_EXHAUSTED
    9: 400,   # FAILED_PRECONDITION
    10: 409,  # ABORTED
    11: 400,  # OUT_OF_RANGE
    12: 501,  # UNIMPLEMENTED
    13: 500,  # INTERNAL
    14: 503,  # UNAVAILABLE
    15: 500,  # DATA_LOSS
    16: 401,  # UNAUTHENTICATED
}


class OperationFailedError(VertexRagException):
    """An operation finished with a server-reported error."""

    def __init__(self, operation_name: str, error: OperationError):
        super().__init__(
            message=f"Operation {operation_name} failed: {error.message or 'unknown error'}",
            status_code=RPC_TO_HTTP_STATUS.get(error.code, 500),
            request_id=operation_name,
        )
        self.operation_name = operation_name
        self.operation_error = error


class OperationTimeoutError(VertexRagException, TimeoutError):
    """An operation did not finish within the configured bounds."""

    def __init__(self, operation_name: str, attempts: int, elapsed: float):
        super().__init__(
            message=(
                f"Timeout waiting for operation {operation_name} "
                f"after {attempts} attempts ({elapsed:.1f}s)"
            ),
            status_code=408,
            request_id=operation_name,
        )
        self.operation_name = operation_name
        self.attempts = attempts
        self.elapsed = elapsed
