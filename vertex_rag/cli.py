"""
Command line for corpus administration and grounded queries.

Usage:
    vertex-rag list-corpora
    vertex-rag create-corpus my-docs --description "Product manuals"
    vertex-rag import-files <corpus> gs://bucket/manual.pdf
    vertex-rag query <corpus> "Summarize the warranty terms"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional

from pydantic import BaseModel

from .client import VertexRagClient
from .config import Settings
from .models import VertexRagException

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], VertexRagClient]


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vertex-rag",
        description="Manage Vertex AI RAG corpora and run grounded queries.",
    )
    parser.add_argument("--project", help="Google Cloud project (default: from env or key file).")
    parser.add_argument("--location", help="Vertex AI region (default: us-central1).")
    parser.add_argument("--key-file", help="Service account JSON key (default: ADC).")
    parser.add_argument("--poll-interval", type=float, help="Seconds between operation polls.")
    parser.add_argument(
        "--max-wait",
        type=float,
        help="Give up waiting on an operation after this many seconds (0 waits forever).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list-corpora", help="List corpora.")
    p.add_argument("--page-size", type=int, default=100)

    p = sub.add_parser("create-corpus", help="Create a corpus and wait for it.")
    p.add_argument("display_name")
    p.add_argument("--description")

    p = sub.add_parser("delete-corpus", help="Delete a corpus and wait for it.")
    p.add_argument("corpus", help="Corpus ID or resource name.")
    p.add_argument("--force", action="store_true", help="Also delete the corpus files.")

    p = sub.add_parser("import-files", help="Import gs:// files into a corpus.")
    p.add_argument("corpus")
    p.add_argument("uris", nargs="+", help="gs:// URIs to import.")
    p.add_argument("--chunk-size", type=int)
    p.add_argument("--chunk-overlap", type=int)

    p = sub.add_parser("list-files", help="List files in a corpus.")
    p.add_argument("corpus")
    p.add_argument("--page-size", type=int, default=100)

    p = sub.add_parser("upload-file", help="Upload a local file into a corpus.")
    p.add_argument("corpus")
    p.add_argument("path")
    p.add_argument("--description", default="")

    p = sub.add_parser("retrieve", help="Retrieve contexts for a query.")
    p.add_argument("corpus")
    p.add_argument("query")
    p.add_argument("--top-k", type=int, default=5)
    p.add_argument("--threshold", type=float, default=0.5)

    p = sub.add_parser("query", help="Generate an answer grounded on a corpus.")
    p.add_argument("corpus")
    p.add_argument("prompt")
    p.add_argument("--model", help="Publisher model ID.")
    p.add_argument("--top-k", type=int, default=5)
    p.add_argument("--threshold", type=float, default=0.5)
    p.add_argument("--system", help="System instruction.")

    return parser.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.project:
        settings.project_id = args.project
    if args.location:
        settings.location = args.location
    if args.key_file:
        settings.key_file = args.key_file
    if args.poll_interval is not None:
        settings.poll_interval = args.poll_interval
    if args.max_wait is not None:
        settings.max_wait = args.max_wait or None
    return settings


async def _run(args: argparse.Namespace, settings: Settings, client: VertexRagClient) -> BaseModel:
    async with client:
        if args.command == "list-corpora":
            return await client.list_corpora(page_size=args.page_size)
        if args.command == "create-corpus":
            return await client.create_corpus(args.display_name, description=args.description)
        if args.command == "delete-corpus":
            return await client.delete_corpus(args.corpus, force=args.force)
        if args.command == "import-files":
            return await client.import_files(
                args.corpus,
                args.uris,
                chunk_size=args.chunk_size,
                chunk_overlap=args.chunk_overlap,
            )
        if args.command == "list-files":
            return await client.list_files(args.corpus, page_size=args.page_size)
        if args.command == "upload-file":
            return await client.upload_file(args.corpus, args.path, description=args.description)
        if args.command == "retrieve":
            return await client.retrieve_contexts(
                args.corpus, args.query, top_k=args.top_k, threshold=args.threshold
            )
        if args.command == "query":
            return await client.generate_content(
                args.corpus,
                args.prompt,
                model_id=args.model or settings.model,
                top_k=args.top_k,
                threshold=args.threshold,
                system_instruction=args.system,
            )
    raise ValueError(f"Unknown command: {args.command}")


def main(
    argv: Optional[list[str]] = None,
    client_factory: ClientFactory = VertexRagClient.from_settings,
) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = _settings_from_args(args)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error("Invalid configuration: %s", error)
        return 2

    try:
        client = client_factory(settings)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    try:
        result = asyncio.run(_run(args, settings, client))
    except VertexRagException as e:
        logger.error("%s", e)
        return 1
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1

    print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
