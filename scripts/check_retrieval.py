#!/usr/bin/env python3
"""
Retrieval smoke check.

Loads the configured embedding model, probes the Chroma server and runs a few
sample queries, printing every candidate distance next to the relevance
threshold. Use it to calibrate RAG_THRESHOLD_DISTANCE for a new model.

Run with: python scripts/check_retrieval.py ["query" ...]
"""

import asyncio
import sys

from ragcontext.config import get_settings
from ragcontext.errors import RetrievalError
from ragcontext.logger import configure_logging
from ragcontext.rag import RetrievalService

SAMPLE_QUERIES = [
    "What is React?",
    "How do I install npm packages?",
    "Explain TypeScript interfaces",
]


async def check_queries(service: RetrievalService, queries) -> bool:
    settings = service.settings
    store = service.store
    threshold = settings.threshold_distance

    for query in queries:
        print(f"\n=== Query: {query!r} ===")
        try:
            vector = await service.embedder.aembed(query)
            collection = await store.get_collection(settings.collection_name)
            results = await store.query(collection, vector, settings.candidate_count)
        except RetrievalError as e:
            print(f"  ✗ {e}")
            return False

        for result in results:
            mark = "✓" if result.distance < threshold else " "
            print(f"  {mark} {result.distance:8.3f}  {result.document.id}")

        texts = await service.retrieve(query)
        print(f"  -> {len(texts)} relevant (threshold {threshold})")

    return True


async def main(queries) -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    service = RetrievalService(settings)
    try:
        await service.init()
    except RetrievalError as e:
        print(f"  ✗ Model load FAILED: {e}")
        return 1
    print(f"  ✓ Model loaded: {service.embedder.handle}")

    try:
        if not service.connection_state.connected:
            print(f"  ✗ Vector store unreachable at {settings.store_endpoint}")
            return 1
        print(f"  ✓ Vector store reachable at {settings.store_endpoint}")

        ok = await check_queries(service, queries or SAMPLE_QUERIES)
        return 0 if ok else 1
    finally:
        await service.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
