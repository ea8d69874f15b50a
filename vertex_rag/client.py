"""
Vertex AI RAG API Client

Async-first HTTP client for the Vertex AI RAG Engine REST API.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import TYPE_CHECKING, Any, Callable, Optional, TypeVar, Union

import httpx
from google.auth.credentials import Credentials

from .auth import get_access_token, load_credentials
from .models import (
    APIError,
    Candidate,
    CorpusCreated,
    CorpusDeleted,
    FilesImported,
    GenerateContentResponse,
    Operation,
    OperationError,
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

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_corpus(data: dict[str, Any]) -> RagCorpus:
    return RagCorpus(
        name=data.get("name", ""),
        display_name=data.get("displayName", ""),
        description=data.get("description"),
        create_time=data.get("createTime"),
        update_time=data.get("updateTime"),
    )


def _parse_file(data: dict[str, Any]) -> RagFile:
    uris = (data.get("gcsSource") or {}).get("uris") or []
    return RagFile(
        name=data.get("name", ""),
        display_name=data.get("displayName", ""),
        description=data.get("description"),
        source_uri=uris[0] if uris else None,
        create_time=data.get("createTime"),
        update_time=data.get("updateTime"),
    )


def _parse_operation(data: dict[str, Any]) -> Operation:
    error_data = data.get("error")
    error = None
    if error_data is not None:
        error = OperationError(
            code=error_data.get("code", 0),
            message=error_data.get("message", ""),
            details=error_data.get("details", []),
        )
    return Operation(
        name=data.get("name", ""),
        done=bool(data.get("done", False)),
        metadata=data.get("metadata") or {},
        response=data.get("response"),
        error=error,
    )


def decode_corpus_created(response: dict[str, Any]) -> CorpusCreated:
    """Decode the terminal payload of a corpus creation."""
    if not response.get("name"):
        raise VertexRagException(
            message="Corpus creation finished without a corpus in the response",
            status_code=502,
        )
    return CorpusCreated(corpus=_parse_corpus(response))


def decode_corpus_deleted(response: dict[str, Any]) -> CorpusDeleted:
    """Decode the terminal payload of a corpus deletion (an empty message)."""
    return CorpusDeleted()


def decode_files_imported(response: dict[str, Any]) -> FilesImported:
    """Decode the terminal payload of a file import."""
    # int64 counters are serialized as JSON strings
    return FilesImported(
        imported_rag_files_count=int(response.get("importedRagFilesCount", 0)),
        failed_rag_files_count=int(response.get("failedRagFilesCount", 0)),
        skipped_rag_files_count=int(response.get("skippedRagFilesCount", 0)),
    )


class VertexRagClient:
    """
    Async client for the Vertex AI RAG API.

    Example:
        credentials, project_id = load_credentials("service-account.json")
        client = VertexRagClient(project_id=project_id, credentials=credentials)
        created = await client.create_corpus(display_name="docs")
    """

    DEFAULT_LOCATION = "us-central1"
    DEFAULT_MODEL = "gemini-1.5-pro-002"
    DEFAULT_TIMEOUT = 60.0
    API_VERSION = "v1"

    def __init__(
        self,
        project_id: str,
        location: str = DEFAULT_LOCATION,
        credentials: Optional[Credentials] = None,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        poll_policy: Optional[PollPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Vertex AI RAG client.

        Args:
            project_id: Google Cloud project ID
            location: Vertex AI region (default: us-central1)
            credentials: google-auth credentials, refreshed as needed
            access_token: Static bearer token (used instead of credentials)
            timeout: Request timeout in seconds
            poll_policy: Default policy for waiting on long-running operations
            http_client: Optional custom httpx.AsyncClient
        """
        if credentials is None and access_token is None:
            raise ValueError("Either credentials or access_token is required")

        self.project_id = project_id
        self.location = location
        self.base_url = f"https://{location}-aiplatform.googleapis.com"
        self.timeout = timeout
        self.poll_policy = poll_policy or PollPolicy()
        self._credentials = credentials
        self._access_token = access_token
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "VertexRagClient":
        """Build a client from settings, loading credentials from the key file or ADC."""
        credentials, key_project = load_credentials(settings.key_file)
        project_id = settings.project_id or key_project
        if not project_id:
            raise ValueError("No project ID configured and none found in the credentials")
        return cls(
            project_id=project_id,
            location=settings.location,
            credentials=credentials,
            poll_policy=settings.poll_policy(),
        )

    async def __aenter__(self) -> "VertexRagClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": "vertex-rag-python/0.1.0",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _auth_headers(self) -> dict[str, str]:
        if self._access_token is not None:
            token = self._access_token
        else:
            token = await get_access_token(self._credentials)
        return {"Authorization": f"Bearer {token}"}

    @property
    def parent(self) -> str:
        """Resource name of the project location."""
        return f"projects/{self.project_id}/locations/{self.location}"

    def corpus_name(self, corpus: str) -> str:
        """Expand a bare corpus ID into its full resource name."""
        if corpus.startswith("projects/"):
            return corpus
        return f"{self.parent}/ragCorpora/{corpus}"

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Make an API request and return the decoded body."""
        client = await self._ensure_client()

        logger.debug("%s %s", method, path)
        response = await client.request(
            method=method,
            url=path,
            json=json_data,
            params=params,
            headers=await self._auth_headers(),
        )

        if not response.is_success:
            await self._handle_error(response)

        if not response.content:
            return {}
        return response.json()

    async def _upload_file(
        self,
        path: str,
        file_content: bytes,
        filename: str,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        """Upload a file using a multipart/related body."""
        client = await self._ensure_client()

        boundary = f"boundary-{uuid.uuid4().hex}"
        body = b"".join([
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n",
            b'Content-Disposition: form-data; name="metadata"\r\n\r\n',
            json.dumps(metadata).encode(),
            f"\r\n--{boundary}\r\n".encode(),
            b"Content-Type: application/octet-stream\r\n",
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n\r\n'.encode(),
            file_content,
            f"\r\n--{boundary}--\r\n".encode(),
        ])

        headers = await self._auth_headers()
        headers["Content-Type"] = f"multipart/related; boundary={boundary}"
        headers["X-Goog-Upload-Protocol"] = "multipart"

        logger.debug("POST %s (%d bytes)", path, len(file_content))
        response = await client.post(path, content=body, headers=headers)

        if not response.is_success:
            await self._handle_error(response)

        if not response.content:
            raise VertexRagException(
                message="Upload returned an empty response",
                status_code=502,
            )
        return response.json()

    async def _handle_error(self, response: httpx.Response) -> None:
        """Handle error responses."""
        try:
            data = response.json()
        except ValueError:
            raise VertexRagException(
                message=response.text or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if isinstance(data, list) and data:
            data = data[0]

        if isinstance(data, dict) and "error" in data:
            error_data = data["error"]
            if isinstance(error_data, dict):
                error = APIError(
                    code=error_data.get("code", response.status_code),
                    message=error_data.get("message", ""),
                    status=error_data.get("status"),
                    details=error_data.get("details", []),
                )
                raise VertexRagException(
                    message=error.message,
                    status_code=response.status_code,
                    error=error,
                )
            raise VertexRagException(
                message=str(error_data),
                status_code=response.status_code,
            )

        raise VertexRagException(
            message=response.text or f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    # --- Operations ---

    async def get_operation(self, name: str) -> Operation:
        """
        Fetch the current state of a long-running operation.

        Args:
            name: Operation resource name

        Returns:
            Operation record
        """
        data = await self._request("GET", f"/{self.API_VERSION}/{name}")
        return _parse_operation(data)

    async def wait_for_operation(
        self,
        name: str,
        decode: Callable[[dict[str, Any]], T],
        policy: Optional[PollPolicy] = None,
    ) -> T:
        """
        Wait for a long-running operation to finish.

        Args:
            name: Operation resource name
            decode: Callable turning the terminal payload into a result
            policy: Poll policy (defaults to the client's)

        Returns:
            The decoded terminal payload

        Raises:
            OperationFailedError: If the operation finished with an error
            OperationTimeoutError: If the operation did not finish in time
        """

        async def fetch() -> Operation:
            return await self.get_operation(name)

        return await wait_for_operation(fetch, decode, policy or self.poll_policy)

    # --- Corpora ---

    async def list_corpora(
        self,
        page_size: int = 100,
        page_token: Optional[str] = None,
    ) -> RagCorpusList:
        """
        List corpora in the project location.

        Args:
            page_size: Number of results per page
            page_token: Token from a previous page

        Returns:
            RagCorpusList with corpora and the next page token
        """
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token

        data = await self._request("GET", f"/{self.API_VERSION}/{self.parent}/ragCorpora", params=params)

        return RagCorpusList(
            corpora=[_parse_corpus(c) for c in data.get("ragCorpora", [])],
            next_page_token=data.get("nextPageToken") or None,
        )

    async def get_corpus(self, corpus: str) -> RagCorpus:
        """
        Get a corpus by ID or resource name.

        Args:
            corpus: Corpus ID or full resource name

        Returns:
            Corpus details
        """
        data = await self._request("GET", f"/{self.API_VERSION}/{self.corpus_name(corpus)}")
        return _parse_corpus(data)

    async def create_corpus(
        self,
        display_name: str,
        description: Optional[str] = None,
        wait: bool = True,
    ) -> Union[CorpusCreated, Operation]:
        """
        Create a new corpus.

        Args:
            display_name: Corpus display name
            description: Optional description
            wait: Block until the creation operation finishes

        Returns:
            CorpusCreated when waiting, otherwise the pending Operation
        """
        payload: dict[str, Any] = {"display_name": display_name}
        if description is not None:
            payload["description"] = description

        data = await self._request(
            "POST", f"/{self.API_VERSION}/{self.parent}/ragCorpora", json_data=payload
        )
        operation = _parse_operation(data)
        logger.info("Create corpus operation started: %s", operation.name)

        if not wait:
            return operation

        created = await self.wait_for_operation(operation.name, decode_corpus_created)
        logger.info("Created corpus %s", created.corpus.name)
        return created

    async def delete_corpus(
        self,
        corpus: str,
        force: bool = False,
        wait: bool = True,
    ) -> Union[CorpusDeleted, Operation]:
        """
        Delete a corpus.

        Args:
            corpus: Corpus ID or full resource name
            force: Also delete the files the corpus still holds
            wait: Block until the deletion operation finishes

        Returns:
            CorpusDeleted when waiting, otherwise the pending Operation
        """
        params = {"force": "true"} if force else None
        data = await self._request(
            "DELETE", f"/{self.API_VERSION}/{self.corpus_name(corpus)}", params=params
        )
        operation = _parse_operation(data)
        logger.info("Delete corpus operation started: %s", operation.name)

        if not wait:
            return operation

        deleted = await self.wait_for_operation(operation.name, decode_corpus_deleted)
        logger.info("Deleted corpus %s", self.corpus_name(corpus))
        return deleted

    # --- Files ---

    async def import_files(
        self,
        corpus: str,
        gcs_uris: list[str],
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        wait: bool = True,
    ) -> Union[FilesImported, Operation]:
        """
        Import files from Cloud Storage into a corpus.

        Args:
            corpus: Corpus ID or full resource name
            gcs_uris: gs:// URIs of files or folders to import
            chunk_size: Optional chunk size in tokens
            chunk_overlap: Optional overlap between chunks in tokens
            wait: Block until the import operation finishes

        Returns:
            FilesImported when waiting, otherwise the pending Operation
        """
        if not gcs_uris:
            raise ValueError("At least one gs:// URI is required")

        config: dict[str, Any] = {"gcs_source": {"uris": list(gcs_uris)}}
        if chunk_size is not None or chunk_overlap is not None:
            chunking: dict[str, Any] = {}
            if chunk_size is not None:
                chunking["chunk_size"] = chunk_size
            if chunk_overlap is not None:
                chunking["chunk_overlap"] = chunk_overlap
            config["rag_file_transformation_config"] = {
                "rag_file_chunking_config": {"fixed_length_chunking": chunking}
            }

        name = self.corpus_name(corpus)
        data = await self._request(
            "POST",
            f"/{self.API_VERSION}/{name}/ragFiles:import",
            json_data={"import_rag_files_config": config},
        )
        operation = _parse_operation(data)
        logger.info("Import operation started: %s", operation.name)

        if not wait:
            return operation

        imported = await self.wait_for_operation(operation.name, decode_files_imported)
        logger.info(
            "Imported %d file(s) into %s (%d failed, %d skipped)",
            imported.imported_rag_files_count,
            name,
            imported.failed_rag_files_count,
            imported.skipped_rag_files_count,
        )
        return imported

    async def list_files(
        self,
        corpus: str,
        page_size: int = 100,
        page_token: Optional[str] = None,
    ) -> RagFileList:
        """
        List files in a corpus.

        Args:
            corpus: Corpus ID or full resource name
            page_size: Number of results per page
            page_token: Token from a previous page

        Returns:
            RagFileList with files and the next page token
        """
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token

        data = await self._request(
            "GET", f"/{self.API_VERSION}/{self.corpus_name(corpus)}/ragFiles", params=params
        )

        return RagFileList(
            files=[_parse_file(f) for f in data.get("ragFiles", [])],
            next_page_token=data.get("nextPageToken") or None,
        )

    async def upload_file(
        self,
        corpus: str,
        file_path: str,
        description: str = "",
        display_name: Optional[str] = None,
    ) -> UploadResponse:
        """
        Upload a file from disk directly into a corpus.

        Args:
            corpus: Corpus ID or full resource name
            file_path: Path to the file on disk
            description: Optional file description
            display_name: Display name (defaults to the file name)

        Returns:
            Upload response with the created file
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        filename = os.path.basename(file_path)
        with open(file_path, "rb") as f:
            file_content = f.read()

        name = self.corpus_name(corpus)
        metadata = {
            "rag_file": {
                "display_name": display_name or filename,
                "description": description,
            }
        }
        logger.info("Uploading %s to %s", file_path, name)
        data = await self._upload_file(
            f"/upload/{self.API_VERSION}/{name}/ragFiles:upload",
            file_content=file_content,
            filename=filename,
            metadata=metadata,
        )

        # Upload failures can come back inside a 200 body
        if data.get("error"):
            error_data = data["error"]
            raise VertexRagException(
                message=error_data.get("message", "Upload failed"),
                status_code=error_data.get("code", 500),
                error=APIError(
                    code=error_data.get("code", 500),
                    message=error_data.get("message", "Upload failed"),
                    status=error_data.get("status"),
                ),
            )

        upload = UploadResponse(rag_file=_parse_file(data.get("ragFile", {})))
        logger.info("File uploaded: %s", upload.rag_file.name)
        return upload

    # --- Retrieval ---

    async def retrieve_contexts(
        self,
        corpus: str,
        query: str,
        top_k: int = 5,
        threshold: float = 0.5,
    ) -> RetrievalResponse:
        """
        Retrieve the contexts most relevant to a query.

        Args:
            corpus: Corpus ID or full resource name
            query: Query text
            top_k: Number of contexts to return
            threshold: Maximum vector distance of returned contexts

        Returns:
            RetrievalResponse with contexts
        """
        payload = {
            "vertex_rag_store": {
                "rag_resources": [{"rag_corpus": self.corpus_name(corpus)}],
                "vector_distance_threshold": threshold,
            },
            "query": {
                "text": query,
                "similarity_top_k": top_k,
            },
        }

        data = await self._request(
            "POST", f"/{self.API_VERSION}/{self.parent}:retrieveContexts", json_data=payload
        )

        contexts = [
            RetrievedContext(
                text=c.get("text", ""),
                source_uri=c.get("sourceUri"),
                source_display_name=c.get("sourceDisplayName"),
                distance=c.get("distance"),
                score=c.get("score"),
            )
            for c in (data.get("contexts") or {}).get("contexts", [])
        ]

        return RetrievalResponse(query=query, contexts=contexts)

    # --- Generation ---

    async def generate_content(
        self,
        corpus: str,
        prompt: str,
        model_id: str = DEFAULT_MODEL,
        top_k: int = 5,
        threshold: float = 0.5,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> GenerateContentResponse:
        """
        Generate content grounded on a corpus.

        Args:
            corpus: Corpus ID or full resource name
            prompt: User prompt
            model_id: Publisher model ID (default: gemini-1.5-pro-002)
            top_k: Number of contexts to retrieve
            threshold: Maximum vector distance of retrieved contexts
            system_instruction: Optional system prompt
            temperature: Sampling temperature
            max_output_tokens: Maximum tokens to generate

        Returns:
            GenerateContentResponse with candidates and grounding metadata
        """
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [
                {
                    "retrieval": {
                        "disable_attribution": False,
                        "vertex_rag_store": {
                            "rag_resources": [{"rag_corpus": self.corpus_name(corpus)}],
                            "similarity_top_k": top_k,
                            "vector_distance_threshold": threshold,
                        },
                    }
                }
            ],
        }
        if system_instruction is not None:
            payload["system_instruction"] = {"parts": [{"text": system_instruction}]}

        generation_config: dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_output_tokens is not None:
            generation_config["max_output_tokens"] = max_output_tokens
        if generation_config:
            payload["generation_config"] = generation_config

        data = await self._request(
            "POST",
            f"/{self.API_VERSION}/{self.parent}/publishers/google/models/{model_id}:generateContent",
            json_data=payload,
        )

        candidates = [
            Candidate(
                index=c.get("index", i),
                text="".join(
                    p.get("text", "") for p in (c.get("content") or {}).get("parts", [])
                ),
                finish_reason=c.get("finishReason"),
                grounding_metadata=c.get("groundingMetadata"),
            )
            for i, c in enumerate(data.get("candidates", []))
        ]

        usage = data.get("usageMetadata")
        if usage is not None:
            usage = {k: v for k, v in usage.items() if isinstance(v, int)}

        return GenerateContentResponse(
            candidates=candidates,
            usage=usage,
            model_version=data.get("modelVersion"),
        )
