"""Pydantic models for realtime helper data structures."""

from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Document(BaseModel):
    """A knowledge base document. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="", description="Document identifier (not enforced unique)")
    title: str = Field(default="", description="Document title")
    url: str = Field(default="", description="Source URL cited in answers")
    tags: List[str] = Field(default_factory=list, description="Ordered tag list")
    content: str = Field(default="", description="Document body text")

    @field_validator("id", "title", "url", "content", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        """Coerce scalar values to strings; null becomes empty."""
        if v is None:
            return ""
        return str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v: Any) -> List[str]:
        """Accept a single tag string as well as a list of tags."""
        if v is None or v == "":
            return []
        if isinstance(v, (list, tuple)):
            return [str(tag) for tag in v]
        return [str(v)]


class ScoredResult(BaseModel):
    """A document matched by a search, with its score and snippet."""

    id: str
    title: str
    url: str
    score: int = Field(..., ge=0)
    snippet: str = ""
    tags: List[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    results: List[ScoredResult] = Field(default_factory=list)
    query: str
    top_k: int


class QueryRecord(BaseModel):
    """One audit entry for a served search."""

    ts: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO-8601 UTC timestamp of the search",
    )
    query: str
    top_k: int
    hit_count: int = Field(..., ge=0)
    ua: str = Field(default="", description="Client User-Agent header")


class QueryStatsSnapshot(BaseModel):
    total: int = 0
    recent: List[QueryRecord] = Field(default_factory=list)


class EmotionResult(BaseModel):
    """Heuristic affect estimate returned by /emotion/analyze."""

    primary: str
    polarity: str
    valence: float = Field(..., ge=-1.0, le=1.0)
    arousal: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    features: Dict[str, Any] = Field(default_factory=dict)
