# knowledge_base.py
"""Static knowledge base loading.

The collection is read once at application startup. Any failure to read or
parse the file degrades to an empty collection instead of failing.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from .logging_utils import get_logger
from .models import Document, ScoredResult
from .retriever import DEFAULT_TOP_K, rank_documents

logger = get_logger(__name__)


@dataclass
class KnowledgeBaseLoadResult:
    """Outcome of loading the knowledge base file.

    Attributes:
        documents: Documents that loaded successfully.
        source: Path the collection was read from.
        error: Reason the load degraded to an empty collection, if it did.
        skipped: Number of array entries rejected as invalid.
    """

    documents: List[Document]
    source: Path
    error: Optional[str] = None
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def load_knowledge_base(path: Union[str, Path]) -> KnowledgeBaseLoadResult:
    """Read a JSON array of documents from ``path``.

    Args:
        path: Location of the knowledge base JSON file.

    Returns:
        KnowledgeBaseLoadResult; on failure ``documents`` is empty and
        ``error`` describes the problem.
    """
    source = Path(path)

    try:
        raw = source.read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(
            f"KB load failed: {e}",
            extra={"kb_path": str(source)},
        )
        return KnowledgeBaseLoadResult(documents=[], source=source, error=str(e))

    if not isinstance(data, list):
        message = f"expected a JSON array, got {type(data).__name__}"
        logger.warning(
            f"KB load failed: {message}",
            extra={"kb_path": str(source)},
        )
        return KnowledgeBaseLoadResult(documents=[], source=source, error=message)

    documents: List[Document] = []
    skipped = 0
    for position, entry in enumerate(data):
        if not isinstance(entry, dict):
            skipped += 1
            logger.warning(
                "Skipping KB entry that is not an object",
                extra={"kb_path": str(source), "position": position},
            )
            continue
        try:
            documents.append(Document.model_validate(entry))
        except ValidationError as e:
            skipped += 1
            logger.warning(
                f"Skipping invalid KB entry: {e.error_count()} validation error(s)",
                extra={"kb_path": str(source), "position": position},
            )

    logger.info(
        "Knowledge base loaded",
        extra={"kb_path": str(source), "documents": len(documents), "skipped": skipped},
    )
    return KnowledgeBaseLoadResult(documents=documents, source=source, skipped=skipped)


class KnowledgeBase:
    """In-memory, read-only document collection."""

    def __init__(self, documents: Optional[List[Document]] = None):
        self._documents = tuple(documents or ())

    @property
    def documents(self) -> tuple:
        return self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> List[ScoredResult]:
        return rank_documents(self._documents, query, top_k)
