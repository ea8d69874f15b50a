"""
Example: Corpus lifecycle

This example shows how to create a corpus, import files from
Cloud Storage, list what was imported, and clean up.
"""

import asyncio
import os

from vertex_rag import VertexRagClient


async def main():
    client = VertexRagClient(
        project_id=os.environ.get("VERTEX_RAG_PROJECT", "your-project-id"),
        location=os.environ.get("VERTEX_RAG_LOCATION", "us-central1"),
        access_token=os.environ.get("VERTEX_RAG_ACCESS_TOKEN", "your-access-token"),
    )

    gcs_uri = os.environ.get("VERTEX_RAG_GCS_URI", "gs://your-bucket/handbook.pdf")

    async with client:
        # --- Create a corpus ---
        print("=== Create Corpus ===\n")

        created = await client.create_corpus(
            display_name="Lifecycle Demo",
            description="Temporary corpus for the lifecycle example",
        )
        corpus = created.corpus

        print(f"Created corpus: {corpus.display_name}")
        print(f"  Name: {corpus.name}")
        print(f"  ID: {corpus.corpus_id}")

        # --- Import files (waits for the import operation) ---
        print("\n\n=== Import Files ===\n")

        imported = await client.import_files(
            corpus=corpus.name,
            gcs_uris=[gcs_uri],
            chunk_size=1024,
            chunk_overlap=100,
        )

        print(f"Imported: {imported.imported_rag_files_count}")
        print(f"Failed: {imported.failed_rag_files_count}")
        print(f"Skipped: {imported.skipped_rag_files_count}")

        # --- List files ---
        print("\n\n=== List Files ===\n")

        files = await client.list_files(corpus.name, page_size=10)

        for rag_file in files.files:
            print(f"  - {rag_file.display_name} ({rag_file.source_uri or 'direct upload'})")

        # --- Clean up: delete the corpus ---
        print("\n\n=== Cleanup: Delete Corpus ===\n")

        await client.delete_corpus(corpus.corpus_id, force=True)
        print(f"Deleted corpus: {corpus.name}")


if __name__ == "__main__":
    asyncio.run(main())
