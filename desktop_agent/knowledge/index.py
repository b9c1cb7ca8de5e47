"""In-memory knowledge index with keyword-overlap retrieval.

Entries are append-only for the lifetime of a session and are only
removed all at once by ``clear()``. Retrieval scores each entry by
counting partial containment matches between query words and the
entry's keywords, in either direction, so "rust" matches "rustlang"
and "tutorials" matches "tutorial".
"""

import logging
import time
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime

from desktop_agent.knowledge.models import IndexEntry

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5


def generate_entry_id() -> str:
    """Return an id like ``idx_1718000000000_3f9a2b1c0``."""
    return f"idx_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def score_entry(keywords: Sequence[str], query_words: Sequence[str]) -> int:
    """Count query-word/keyword partial-containment matches.

    Each (keyword, word) pair contributes 1 when either string contains
    the other. Repeated words and duplicate keywords each count.
    """
    score = 0
    for keyword in keywords:
        kw = keyword.lower()
        score += sum(1 for word in query_words if word in kw or kw in word)
    return score


class KnowledgeIndex:
    """Append-only collection of index entries for one session."""

    def __init__(self) -> None:
        self._entries: list[IndexEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[IndexEntry, ...]:
        """Snapshot of all entries in insertion order."""
        return tuple(self._entries)

    def get(self, entry_id: str) -> IndexEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def add(self, content: str, keywords: Sequence[str]) -> IndexEntry:
        """Create and append a new entry."""
        entry = IndexEntry(
            id=generate_entry_id(),
            content=content,
            keywords=list(keywords),
            created_at=datetime.now(UTC),
        )
        self._entries.append(entry)
        logger.debug("Indexed %s with %d keywords", entry.id, len(entry.keywords))
        return entry

    def retrieve(self, query: str, limit: int = DEFAULT_LIMIT) -> list[IndexEntry]:
        """Return up to ``limit`` entries relevant to ``query``, best first.

        Entries with a zero score are excluded. Ties keep insertion
        order. The returned entries are copies carrying
        ``relevance_score``; stored entries are never modified.
        """
        query_words = query.lower().split()
        if not query_words or limit <= 0:
            return []

        scored: list[IndexEntry] = []
        for entry in self._entries:
            score = score_entry(entry.keywords, query_words)
            if score > 0:
                scored.append(entry.model_copy(update={"relevance_score": score}))

        scored.sort(key=lambda e: e.relevance_score, reverse=True)
        return scored[:limit]

    def clear(self) -> int:
        """Remove all entries. Returns the count of removed entries."""
        count = len(self._entries)
        self._entries = []
        if count:
            logger.info("Cleared %d index entries", count)
        return count
