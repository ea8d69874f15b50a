"""
Example: Retrieval and grounded generation

This example shows how to retrieve raw contexts from a corpus and
how to ask a Gemini model to answer using that corpus.
"""

import asyncio
import os

from vertex_rag import VertexRagClient


async def main():
    client = VertexRagClient(
        project_id=os.environ.get("VERTEX_RAG_PROJECT", "your-project-id"),
        access_token=os.environ.get("VERTEX_RAG_ACCESS_TOKEN", "your-access-token"),
    )

    corpus = os.environ.get("VERTEX_RAG_CORPUS", "your-corpus-id")

    async with client:
        # --- Retrieve contexts ---
        print("=== Retrieve Contexts ===\n")

        retrieval = await client.retrieve_contexts(
            corpus=corpus,
            query="What is the name of the person in the resume?",
            top_k=5,
            threshold=0.5,
        )

        print(f"Found {len(retrieval.contexts)} contexts\n")

        for i, context in enumerate(retrieval.contexts, 1):
            print(f"--- Context {i} (distance: {context.distance}) ---")
            print(context.text[:200] + "..." if len(context.text) > 200 else context.text)
            print()

        # --- Grounded generation ---
        print("\n=== Generate Content ===\n")

        response = await client.generate_content(
            corpus=corpus,
            prompt="Write a greeting for the person in the resume that includes their name.",
            temperature=0.2,
        )

        print(f"Answer: {response.text}")
        if response.candidates:
            print(f"Finish reason: {response.candidates[0].finish_reason}")
        if response.usage:
            print(f"Tokens used: {response.usage.get('totalTokenCount')}")


if __name__ == "__main__":
    asyncio.run(main())
