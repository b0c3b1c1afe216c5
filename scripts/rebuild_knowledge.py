#!/usr/bin/env python3
"""
Rebuild the chatbot knowledge base from every source collection.

Usage:
    python scripts/rebuild_knowledge.py          # re-embed everything
    python scripts/rebuild_knowledge.py --changed  # only sources whose text changed
"""

import asyncio
import logging
import sys

from config.settings import configure_logging
from chatbot_knowledge.service import KnowledgeService

logger = logging.getLogger(__name__)


async def main(force: bool) -> int:
    service = KnowledgeService.from_settings()
    try:
        await service.ensure_indexes()
        summaries = await service.rebuild_all(force=force)
    except Exception as e:
        logger.error(f"Rebuild failed: {e}")
        return 1
    finally:
        await service.close()

    print("\n" + "=" * 60)
    print("  📚 Knowledge base rebuilt")
    print("=" * 60)
    for source_type, summary in summaries.items():
        print(
            f"  {source_type.value:<13} synced={summary.synced} unchanged={summary.unchanged} "
            f"removed={summary.removed} pruned={summary.pruned} chunks={summary.chunks}"
        )
    return 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(main(force="--changed" not in sys.argv[1:])))
