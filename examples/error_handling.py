"""
Example: Error handling and operation timeouts

This example shows how to handle API errors, how to bound the wait
on a long-running operation, and how to retry transient failures.
"""

import asyncio
import os
import random

from vertex_rag import (
    OperationTimeoutError,
    PollPolicy,
    VertexRagClient,
    VertexRagException,
)


async def get_corpus_with_retry(
    client: VertexRagClient,
    corpus: str,
    max_retries: int = 3,
):
    """Fetch a corpus with exponential backoff retry on transient errors."""

    for attempt in range(max_retries):
        try:
            return await client.get_corpus(corpus)
        except VertexRagException as e:
            print(f"Attempt {attempt + 1} failed: {e}")

            # Don't retry auth errors
            if e.is_auth_error:
                print("Authentication error - check your credentials")
                raise

            if not e.is_retryable:
                print(f"Non-retryable error (status {e.status_code})")
                raise

            if attempt < max_retries - 1:
                wait_time = (2 ** attempt) + random.uniform(0, 1)
                print(f"Transient error - waiting {wait_time:.1f}s before retry")
                await asyncio.sleep(wait_time)

    raise VertexRagException(message="Max retries exceeded", status_code=503)


async def main():
    client = VertexRagClient(
        project_id=os.environ.get("VERTEX_RAG_PROJECT", "your-project-id"),
        access_token=os.environ.get("VERTEX_RAG_ACCESS_TOKEN", "your-access-token"),
    )

    corpus = os.environ.get("VERTEX_RAG_CORPUS", "your-corpus-id")
    gcs_uri = os.environ.get("VERTEX_RAG_GCS_URI", "gs://your-bucket/handbook.pdf")

    async with client:
        # --- Basic error handling ---
        print("=== Basic Error Handling ===\n")

        try:
            await client.get_corpus("non-existent-corpus")
        except VertexRagException as e:
            print(f"Error: {e}")
            print(f"Status code: {e.status_code}")

            if e.error:
                print(f"Error status: {e.error.status}")
                print(f"Error message: {e.error.message}")

        # --- Bounded wait on a long-running operation ---
        print("\n\n=== Bounded Operation Wait ===\n")

        operation = await client.import_files(corpus, [gcs_uri], wait=False)
        print(f"Started: {operation.name}")

        try:
            await client.wait_for_operation(
                operation.name,
                decode=lambda response: response,
                policy=PollPolicy(interval=0.5, backoff=2.0, max_interval=4.0, max_attempts=3),
            )
        except OperationTimeoutError as e:
            print(f"Gave up after {e.attempts} attempts ({e.elapsed:.1f}s)")

        # --- Retry with backoff ---
        print("\n\n=== Retry with Backoff ===\n")

        try:
            fetched = await get_corpus_with_retry(client, corpus)
            print(f"Success! Corpus: {fetched.display_name}")
        except VertexRagException as e:
            print(f"All retries failed: {e}")


if __name__ == "__main__":
    asyncio.run(main())
