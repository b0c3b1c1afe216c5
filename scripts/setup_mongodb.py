#!/usr/bin/env python3
"""
MongoDB Atlas Setup Script

Prepares the knowledge collection for the chatbot:
1. Test the MongoDB connection
2. Create the unique (sourceType, sourceId, chunkIndex) index
3. Check for the Atlas vector search index and create it on request

Usage:
    python scripts/setup_mongodb.py                 # check only
    python scripts/setup_mongodb.py --create-index  # also request the vector index

Without a vector index the chatbot still answers, using the exact similarity
scan; the index only makes retrieval faster on large knowledge bases.
"""

import asyncio
import json
import logging
import sys

from config.settings import get_settings, configure_logging
from chatbot_knowledge.exceptions import ConfigurationError
from chatbot_knowledge.knowledge_store import MongoKnowledgeStore

logger = logging.getLogger(__name__)


def print_banner():
    """Print setup banner."""
    print("\n" + "=" * 60)
    print("  🍃 MongoDB Atlas Knowledge Base Setup")
    print("=" * 60 + "\n")


def print_index_instructions(store: MongoKnowledgeStore):
    """Print instructions for creating the vector search index by hand."""
    print("\n" + "=" * 60)
    print("  📋 Create Vector Search Index")
    print("=" * 60)
    print(f"""
Create it in the Atlas UI (Atlas Search → Create Search Index → JSON Editor)
on {store.database_name}.{store.collection_name} with the name
"{store.vector_index}" and this definition:
""")
    print(json.dumps(store.vector_index_definition(), indent=2))
    print("\nOr rerun this script with --create-index.")


async def check_vector_index(store: MongoKnowledgeStore) -> bool:
    """Report whether the vector search index exists and is queryable."""
    collection = await store._connect()
    print(f"\n🔍 Checking for vector index: {store.vector_index}")

    try:
        cursor = await collection.list_search_indexes(store.vector_index)
        indexes = await cursor.to_list(None)
    except Exception as e:
        logger.debug(f"Could not list search indexes: {e}")
        print("⚠️  Could not check index status (requires an Atlas cluster)")
        return False

    if not indexes:
        print("⚠️  Vector index not found")
        return False

    status = indexes[0].get("status", "unknown")
    print(f"✅ Vector index found! Status: {status}")
    return status == "READY"


async def main(create_index: bool) -> int:
    """Main setup flow."""
    print_banner()
    settings = get_settings()

    try:
        store = MongoKnowledgeStore(dimension=settings.embedding.dimension)
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1

    try:
        print("🔌 Testing MongoDB Connection...")
        await store.ensure_indexes()
        print(f"✅ Connected; indexes ensured on {store.database_name}.{store.collection_name}")
        print(f"   Chunks stored: {await store.count()}")

        if not await check_vector_index(store):
            if create_index:
                name = await store.create_vector_index()
                print(f"✅ Requested vector index '{name}' (it may take a few minutes to build)")
            else:
                print_index_instructions(store)
    except Exception as e:
        logger.error(f"Setup failed: {e}")
        print(f"❌ Setup failed: {e}")
        return 1
    finally:
        await store.close()

    print("\n✅ MongoDB setup complete")
    return 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(main(create_index="--create-index" in sys.argv[1:])))
