"""
Knowledge index bootstrap: create the index (idempotent) and upsert the seed
documents. Failures are logged; the gateway still starts and serves turns
with empty knowledge context.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import yaml

from logging_setup import get_logger, Component
from trip_pipeline.knowledge import KnowledgeIndex

logger = get_logger(Component.GATEWAY)


def load_seed_documents(path: str | Path) -> List[Dict[str, str]]:
    path = Path(path)
    if not path.exists():
        logger.warning("Seed file not found", path=str(path))
        return []
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    docs = data.get("documents") if isinstance(data, dict) else None
    if not isinstance(docs, list):
        raise ValueError(f"Seed file {path} must contain a 'documents' list")
    return [
        {"id": str(d["id"]), "text": str(d["text"])}
        for d in docs
        if isinstance(d, dict) and d.get("id") and d.get("text")
    ]


async def bootstrap_knowledge(knowledge: KnowledgeIndex, seed_file: str | Path) -> int:
    """Returns the number of documents seeded."""
    try:
        await knowledge.ensure_index()
    except Exception as e:
        logger.error("Vector index creation failed", error=str(e), error_type=type(e).__name__)
        return 0

    try:
        documents = load_seed_documents(seed_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Seed file unreadable", path=str(seed_file), error=str(e))
        return 0

    seeded = 0
    for doc in documents:
        try:
            await knowledge.upsert(doc["id"], doc["text"])
            seeded += 1
        except Exception as e:
            logger.error(
                "Seeding document failed",
                doc_id=doc["id"],
                error=str(e),
                error_type=type(e).__name__,
            )
    logger.info("Knowledge seeded", documents=seeded, total=len(documents))
    return seeded
