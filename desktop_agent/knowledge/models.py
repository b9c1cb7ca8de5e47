"""Data models for the knowledge index."""

from datetime import datetime

from pydantic import BaseModel, Field


class IndexEntry(BaseModel):
    """One stored unit of analyzed content plus its keywords."""

    id: str
    content: str
    keywords: list[str] = Field(default_factory=list)
    created_at: datetime
    relevance_score: int | None = None  # set on retrieval copies only


class ContentAnalysis(BaseModel):
    """Keyword/summary record produced by the content analyzer."""

    keywords: list[str] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    summary: str = ""

    def all_keywords(self) -> list[str]:
        """Keywords, themes and entities in that order, as stored on an entry."""
        return [*self.keywords, *self.themes, *self.entities]
