"""
Vertex AI RAG Python client

A simple, async-first wrapper for the Vertex AI RAG Engine REST API.
"""

from .auth import load_credentials
from .client import VertexRagClient
from .config import Settings
from .models import (
    APIError,
    Candidate,
    CorpusCreated,
    CorpusDeleted,
    FilesImported,
    GenerateContentResponse,
    Operation,
    OperationError,
    OperationFailedError,
    OperationResult,
    OperationTimeoutError,
    RagCorpus,
    RagCorpusList,
    RagFile,
    RagFileList,
    RetrievalResponse,
    RetrievedContext,
    UploadResponse,
    VertexRagException,
)
from .polling import PollPolicy, wait_for_operation

__version__ = "0.1.0"
__all__ = [
    # Client
    "VertexRagClient",
    "Settings",
    "load_credentials",
    # Operations
    "Operation",
    "OperationError",
    "OperationResult",
    "CorpusCreated",
    "CorpusDeleted",
    "FilesImported",
    "PollPolicy",
    "wait_for_operation",
    # Corpora and files
    "RagCorpus",
    "RagCorpusList",
    "RagFile",
    "RagFileList",
    "UploadResponse",
    # Retrieval and generation
    "RetrievedContext",
    "RetrievalResponse",
    "Candidate",
    "GenerateContentResponse",
    # Errors
    "APIError",
    "VertexRagException",
    "OperationFailedError",
    "OperationTimeoutError",
]
