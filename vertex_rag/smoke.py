"""
Release smoke checks for the vertex-rag package.

Usage:
    python -m vertex_rag.smoke
    vertex-rag-smoke
"""

from __future__ import annotations

import argparse
import importlib.util
import itertools
import os
import runpy
import subprocess
import sys
from pathlib import Path
from typing import Any, Callable, Optional

from vertex_rag.models import (
    APIError,
    Candidate,
    CorpusCreated,
    CorpusDeleted,
    FilesImported,
    GenerateContentResponse,
    Operation,
    RagCorpus,
    RagFile,
    RagFileList,
    RetrievalResponse,
    RetrievedContext,
    VertexRagException,
)
from vertex_rag.polling import PollPolicy, wait_for_operation


DEFAULT_EXAMPLES = [
    "corpus_lifecycle.py",
    "rag_query.py",
    "error_handling.py",
]


class FakeVertexRagClient:
    """Small fake client so examples can be exercised without network access."""

    def __init__(self, *args, **kwargs):
        self.project_id = kwargs.get("project_id", "smoke-project")
        self.location = kwargs.get("location", "us-central1")
        self._operation_ids = itertools.count(1)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def corpus_name(self, corpus: str) -> str:
        if corpus.startswith("projects/"):
            return corpus
        return f"projects/{self.project_id}/locations/{self.location}/ragCorpora/{corpus}"

    def _pending(self) -> Operation:
        return Operation(
            name=f"projects/{self.project_id}/locations/{self.location}/operations/{next(self._operation_ids)}",
        )

    async def get_operation(self, name: str) -> Operation:
        # Operations started with wait=False never finish in the smoke run
        return Operation(name=name, metadata={"progressPercentage": 10})

    async def wait_for_operation(
        self,
        name: str,
        decode: Callable[[dict[str, Any]], Any],
        policy: Optional[PollPolicy] = None,
    ) -> Any:
        async def fetch() -> Operation:
            return await self.get_operation(name)

        return await wait_for_operation(fetch, decode, policy or PollPolicy(max_attempts=3))

    async def get_corpus(self, corpus: str) -> RagCorpus:
        if corpus == "non-existent-corpus":
            raise VertexRagException(
                message="RagCorpus not found",
                status_code=404,
                error=APIError(code=404, message="RagCorpus not found", status="NOT_FOUND"),
            )
        return RagCorpus(name=self.corpus_name(corpus), display_name="Smoke Corpus")

    async def create_corpus(self, display_name: str, description: Optional[str] = None, wait: bool = True):
        if not wait:
            return self._pending()
        return CorpusCreated(
            corpus=RagCorpus(
                name=self.corpus_name("4532873024948404224"),
                display_name=display_name,
                description=description,
            )
        )

    async def delete_corpus(self, corpus: str, force: bool = False, wait: bool = True):
        _ = (corpus, force)
        if not wait:
            return self._pending()
        return CorpusDeleted()

    async def import_files(self, corpus: str, gcs_uris: list[str], wait: bool = True, **kwargs):
        _ = (corpus, kwargs)
        if not wait:
            return self._pending()
        return FilesImported(imported_rag_files_count=len(gcs_uris))

    async def list_files(self, corpus: str, **kwargs) -> RagFileList:
        _ = kwargs
        return RagFileList(
            files=[
                RagFile(
                    name=f"{self.corpus_name(corpus)}/ragFiles/1",
                    display_name="handbook.pdf",
                    source_uri="gs://smoke-bucket/handbook.pdf",
                )
            ]
        )

    async def retrieve_contexts(self, corpus: str, query: str, **kwargs) -> RetrievalResponse:
        _ = (corpus, kwargs)
        return RetrievalResponse(
            query=query,
            contexts=[
                RetrievedContext(
                    text="Jane Doe, software engineer with eight years of backend experience.",
                    source_uri="gs://smoke-bucket/resume.pdf",
                    distance=0.21,
                )
            ],
        )

    async def generate_content(self, corpus: str, prompt: str, **kwargs) -> GenerateContentResponse:
        _ = (corpus, prompt, kwargs)
        return GenerateContentResponse(
            candidates=[
                Candidate(
                    text="Hello Jane, it is great to see your backend experience!",
                    finish_reason="STOP",
                    grounding_metadata={"retrievalQueries": ["name of the person"]},
                )
            ],
            usage={"promptTokenCount": 40, "candidatesTokenCount": 12, "totalTokenCount": 52},
            model_version="gemini-1.5-pro-002",
        )


def _run(cmd: list[str], cwd: Path) -> None:
    result = subprocess.run(cmd, cwd=cwd, check=False)
    if result.returncode != 0:
        raise SystemExit(result.returncode)


def _run_prepare_checks(root: Path) -> None:
    if importlib.util.find_spec("build") is None:
        print("Skipping build check: install `build` to enable (`pip install build`).")
    else:
        print("Running: python -m build")
        _run([sys.executable, "-m", "build"], cwd=root)

    if importlib.util.find_spec("twine") is None:
        print("Skipping twine check: install `twine` to enable (`pip install twine`).")
    else:
        dist_files = sorted((root / "dist").glob("*"))
        if not dist_files:
            print("Skipping twine check: no files in dist/ (build may have been skipped).")
            return
        print("Running: python -m twine check dist/*")
        _run([sys.executable, "-m", "twine", "check", *[str(p) for p in dist_files]], cwd=root)


def _run_examples_with_fake_client(root: Path, examples: list[str]) -> None:
    import vertex_rag

    original_client = vertex_rag.VertexRagClient
    vertex_rag.VertexRagClient = FakeVertexRagClient
    try:
        for name in examples:
            path = root / "examples" / name
            print(f"Running example (mocked): {path}")
            runpy.run_path(str(path), run_name="__main__")
    finally:
        vertex_rag.VertexRagClient = original_client


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run smoke checks before release.")
    parser.add_argument(
        "--skip-prepare",
        action="store_true",
        help="Skip package prep checks (build + twine metadata check).",
    )
    parser.add_argument(
        "--examples",
        default=",".join(DEFAULT_EXAMPLES),
        help="Comma-separated example files from examples/ to run.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    root = Path(__file__).resolve().parent.parent
    examples = [x.strip() for x in args.examples.split(",") if x.strip()]
    os.environ.setdefault("VERTEX_RAG_CORPUS", "smoke-corpus-id")

    if not args.skip_prepare:
        _run_prepare_checks(root)

    _run_examples_with_fake_client(root, examples)
    print("Smoke checks passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
