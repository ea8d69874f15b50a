import asyncio
import json

import httpx
import pytest

from vertex_rag import (
    OperationFailedError,
    OperationTimeoutError,
    PollPolicy,
    VertexRagClient,
    VertexRagException,
)
from vertex_rag.models import Operation


BASE_URL = "https://us-central1-aiplatform.googleapis.com"
PARENT = "projects/demo/locations/us-central1"
CORPUS = f"{PARENT}/ragCorpora/123"
OPERATION = f"{PARENT}/operations/7"


def make_client(handler, policy=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return VertexRagClient(
        project_id="demo",
        access_token="test-token",
        http_client=http_client,
        poll_policy=policy or PollPolicy(interval=0.001),
    )


class OperationServer:
    """Answers the triggering call with an operation, then scripted status records."""

    def __init__(self, trigger_method, trigger_suffix, statuses):
        self.trigger_method = trigger_method
        self.trigger_suffix = trigger_suffix
        self.statuses = list(statuses)
        self.requests = []
        self.status_fetches = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == self.trigger_method and request.url.path.endswith(self.trigger_suffix):
            return httpx.Response(200, json={"name": OPERATION, "metadata": {}})
        if request.method == "GET" and request.url.path == f"/v1/{OPERATION}":
            self.status_fetches += 1
            status = self.statuses[min(self.status_fetches, len(self.statuses)) - 1]
            if isinstance(status, httpx.Response):
                return status
            return httpx.Response(200, json={"name": OPERATION, **status})
        return httpx.Response(404, json={"error": {"code": 404, "message": "unexpected", "status": "NOT_FOUND"}})


def test_create_corpus_waits_for_operation():
    server = OperationServer(
        "POST",
        "/ragCorpora",
        [
            {"done": False},
            {
                "done": True,
                "response": {
                    "@type": "type.googleapis.com/google.cloud.aiplatform.v1.RagCorpus",
                    "name": CORPUS,
                    "displayName": "user_2",
                },
            },
        ],
    )
    client = make_client(server)

    created = asyncio.run(client.create_corpus("user_2"))

    assert created.kind == "create_corpus"
    assert created.corpus.display_name == "user_2"
    assert created.corpus.corpus_id == "123"
    assert server.status_fetches == 2

    trigger = server.requests[0]
    assert trigger.url.path == f"/v1/{PARENT}/ragCorpora"
    assert json.loads(trigger.content) == {"display_name": "user_2"}
    assert all(r.headers["Authorization"] == "Bearer test-token" for r in server.requests)


def test_create_corpus_without_wait_returns_operation():
    server = OperationServer("POST", "/ragCorpora", [{"done": True, "response": {"name": CORPUS}}])
    client = make_client(server)

    operation = asyncio.run(client.create_corpus("user_2", wait=False))

    assert isinstance(operation, Operation)
    assert operation.name == OPERATION
    assert server.status_fetches == 0


def test_delete_corpus_accepts_bare_id_and_force():
    server = OperationServer(
        "DELETE",
        "/ragCorpora/123",
        [{"done": True, "response": {"@type": "type.googleapis.com/google.protobuf.Empty"}}],
    )
    client = make_client(server)

    deleted = asyncio.run(client.delete_corpus("123", force=True))

    assert deleted.kind == "delete_corpus"
    trigger = server.requests[0]
    assert trigger.url.path == f"/v1/{CORPUS}"
    assert trigger.url.params["force"] == "true"


def test_import_files_sends_chunking_and_decodes_counts():
    server = OperationServer(
        "POST",
        "/ragFiles:import",
        [
            {"done": False, "metadata": {"progressPercentage": 50}},
            {"done": True, "response": {"importedRagFilesCount": "2", "skippedRagFilesCount": "1"}},
        ],
    )
    client = make_client(server)

    imported = asyncio.run(
        client.import_files(CORPUS, ["gs://bucket/a.pdf", "gs://bucket/b.pdf"], chunk_size=1024, chunk_overlap=100)
    )

    assert imported.kind == "import_files"
    assert imported.imported_rag_files_count == 2
    assert imported.failed_rag_files_count == 0
    assert imported.skipped_rag_files_count == 1

    body = json.loads(server.requests[0].content)
    config = body["import_rag_files_config"]
    assert config["gcs_source"] == {"uris": ["gs://bucket/a.pdf", "gs://bucket/b.pdf"]}
    assert config["rag_file_transformation_config"] == {
        "rag_file_chunking_config": {"fixed_length_chunking": {"chunk_size": 1024, "chunk_overlap": 100}}
    }


def test_import_files_requires_uris():
    client = make_client(lambda request: httpx.Response(500))

    with pytest.raises(ValueError):
        asyncio.run(client.import_files(CORPUS, []))


def test_operation_finished_with_error_raises():
    server = OperationServer(
        "POST",
        "/ragFiles:import",
        [{"done": True, "error": {"code": 3, "message": "No files found at gs://bucket/missing"}}],
    )
    client = make_client(server)

    with pytest.raises(OperationFailedError) as exc_info:
        asyncio.run(client.import_files(CORPUS, ["gs://bucket/missing"]))

    assert exc_info.value.operation_name == OPERATION
    assert exc_info.value.operation_error.code == 3
    assert exc_info.value.status_code == 400
    assert not exc_info.value.is_retryable


def test_status_fetch_failure_aborts_the_wait():
    server = OperationServer(
        "POST",
        "/ragCorpora",
        [
            {"done": False},
            httpx.Response(503, json={"error": {"code": 503, "message": "Backend unavailable", "status": "UNAVAILABLE"}}),
            {"done": True, "response": {"name": CORPUS}},
        ],
    )
    client = make_client(server)

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(client.create_corpus("user_2"))

    assert exc_info.value.status_code == 503
    assert exc_info.value.is_retryable
    assert server.status_fetches == 2


def test_client_poll_policy_bounds_the_wait():
    server = OperationServer("DELETE", "/ragCorpora/123", [{"done": False}])
    client = make_client(server, policy=PollPolicy(interval=0.001, max_attempts=3))

    with pytest.raises(OperationTimeoutError):
        asyncio.run(client.delete_corpus("123"))

    assert server.status_fetches == 3


def test_error_envelope_is_decoded():
    def handler(request):
        return httpx.Response(
            404,
            json={"error": {"code": 404, "message": "RagCorpus not found", "status": "NOT_FOUND"}},
        )

    client = make_client(handler)

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(client.get_corpus("999"))

    error = exc_info.value
    assert error.status_code == 404
    assert error.error.status == "NOT_FOUND"
    assert error.message == "RagCorpus not found"
    assert not error.is_retryable
    assert str(error) == "[404] RagCorpus not found"


def test_non_json_error_uses_body_text():
    client = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(client.list_corpora())

    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "Bad Gateway"


def test_auth_error_flag():
    client = make_client(
        lambda request: httpx.Response(
            403, json={"error": {"code": 403, "message": "Permission denied", "status": "PERMISSION_DENIED"}}
        )
    )

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(client.list_corpora())

    assert exc_info.value.is_auth_error


def test_list_corpora_passes_page_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "ragCorpora": [
                    {"name": CORPUS, "displayName": "user_2", "createTime": "2024-10-01T00:00:00Z"},
                ],
                "nextPageToken": "page-2",
            },
        )

    client = make_client(handler)
    page = asyncio.run(client.list_corpora(page_size=10, page_token="page-1"))

    assert [c.corpus_id for c in page.corpora] == ["123"]
    assert page.next_page_token == "page-2"
    assert seen[0].url.params["pageSize"] == "10"
    assert seen[0].url.params["pageToken"] == "page-1"


def test_list_files_parses_sources():
    def handler(request):
        assert request.url.path == f"/v1/{CORPUS}/ragFiles"
        return httpx.Response(
            200,
            json={
                "ragFiles": [
                    {
                        "name": f"{CORPUS}/ragFiles/1",
                        "displayName": "resume.pdf",
                        "gcsSource": {"uris": ["gs://bucket/resume.pdf"]},
                    },
                    {"name": f"{CORPUS}/ragFiles/2", "displayName": "notes.txt", "directUploadSource": {}},
                ]
            },
        )

    files = asyncio.run(make_client(handler).list_files("123"))

    assert [f.display_name for f in files.files] == ["resume.pdf", "notes.txt"]
    assert files.files[0].source_uri == "gs://bucket/resume.pdf"
    assert files.files[1].source_uri is None
    assert files.next_page_token is None


def test_upload_file_sends_multipart_related(tmp_path):
    path = tmp_path / "resume.txt"
    path.write_bytes(b"Jane Doe, engineer")
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={"ragFile": {"name": f"{CORPUS}/ragFiles/9", "displayName": "resume.txt"}},
        )

    upload = asyncio.run(make_client(handler).upload_file("123", str(path), description="CV"))

    assert upload.rag_file.name.endswith("/ragFiles/9")
    request = seen[0]
    assert request.url.path == f"/upload/v1/{CORPUS}/ragFiles:upload"
    assert request.headers["X-Goog-Upload-Protocol"] == "multipart"
    assert request.headers["Content-Type"].startswith("multipart/related; boundary=")
    body = request.content
    assert b"Jane Doe, engineer" in body
    assert b'"display_name": "resume.txt"' in body
    assert b'"description": "CV"' in body


def test_upload_file_error_in_body_raises(tmp_path):
    path = tmp_path / "big.bin"
    path.write_bytes(b"\x00" * 16)

    def handler(request):
        return httpx.Response(200, json={"error": {"code": 400, "message": "File too large"}})

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(make_client(handler).upload_file("123", str(path)))

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "File too large"


def test_upload_missing_file_raises(tmp_path):
    client = make_client(lambda request: httpx.Response(500))

    with pytest.raises(FileNotFoundError):
        asyncio.run(client.upload_file("123", str(tmp_path / "missing.pdf")))


def test_retrieve_contexts():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "contexts": {
                    "contexts": [
                        {"sourceUri": "gs://bucket/resume.pdf", "text": "Jane Doe", "distance": 0.2, "score": 0.8},
                    ]
                }
            },
        )

    response = asyncio.run(make_client(handler).retrieve_contexts("123", "Who is this?", top_k=3, threshold=0.4))

    assert response.query == "Who is this?"
    assert response.contexts[0].text == "Jane Doe"
    assert response.contexts[0].source_uri == "gs://bucket/resume.pdf"
    assert seen[0].url.path == f"/v1/{PARENT}:retrieveContexts"
    body = json.loads(seen[0].content)
    assert body["vertex_rag_store"]["rag_resources"] == [{"rag_corpus": CORPUS}]
    assert body["vertex_rag_store"]["vector_distance_threshold"] == 0.4
    assert body["query"] == {"text": "Who is this?", "similarity_top_k": 3}


def test_retrieve_contexts_with_no_matches():
    response = asyncio.run(make_client(lambda request: httpx.Response(200, json={})).retrieve_contexts("123", "q"))

    assert response.contexts == []


def test_generate_content_with_retrieval_tool():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {
                        "content": {"role": "model", "parts": [{"text": "Hello "}, {"text": "Jane!"}]},
                        "finishReason": "STOP",
                        "groundingMetadata": {"retrievalQueries": ["name"]},
                    }
                ],
                "usageMetadata": {
                    "promptTokenCount": 10,
                    "candidatesTokenCount": 3,
                    "totalTokenCount": 13,
                    "promptTokensDetails": [{"modality": "TEXT", "tokenCount": 10}],
                },
                "modelVersion": "gemini-1.5-pro-002",
            },
        )

    response = asyncio.run(
        make_client(handler).generate_content(
            "123",
            "Greet the person",
            system_instruction="Be brief.",
            temperature=0.2,
        )
    )

    assert response.text == "Hello Jane!"
    assert response.candidates[0].finish_reason == "STOP"
    assert response.usage == {"promptTokenCount": 10, "candidatesTokenCount": 3, "totalTokenCount": 13}
    assert seen[0].url.path == f"/v1/{PARENT}/publishers/google/models/gemini-1.5-pro-002:generateContent"

    body = json.loads(seen[0].content)
    assert body["contents"] == [{"role": "user", "parts": [{"text": "Greet the person"}]}]
    store = body["tools"][0]["retrieval"]["vertex_rag_store"]
    assert store["rag_resources"] == [{"rag_corpus": CORPUS}]
    assert store["similarity_top_k"] == 5
    assert body["system_instruction"] == {"parts": [{"text": "Be brief."}]}
    assert body["generation_config"] == {"temperature": 0.2}


def test_corpus_name_keeps_full_resource_names():
    client = make_client(lambda request: httpx.Response(500))

    assert client.corpus_name("123") == CORPUS
    assert client.corpus_name(CORPUS) == CORPUS


def test_requires_credentials_or_token():
    with pytest.raises(ValueError):
        VertexRagClient(project_id="demo")


def test_upload_file_empty_body_raises(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"notes")

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(make_client(lambda request: httpx.Response(200)).upload_file("123", str(path)))

    assert "empty response" in exc_info.value.message


def test_undecodable_error_body_uses_status():
    client = make_client(lambda request: httpx.Response(500, content=b"\xff\xfe\x00broken"))

    with pytest.raises(VertexRagException) as exc_info:
        asyncio.run(client.list_corpora())

    assert exc_info.value.status_code == 500
    assert exc_info.value.is_retryable
