"""Trend models for the Thryve API.

``Trend`` is the persisted entity (one row of the ``trends`` table, owned by
a single user); the request/response models back the ``/api/trends``
endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .research import DetailedResearch, ImpactLevel, MAX_SEED_COUNT, MIN_SEED_COUNT


GenerationType = Literal["automatic", "manual"]
SortOption = Literal["newest", "impact-high", "impact-low", "category", "completed", "saved"]

TRENDS_PER_PAGE = 3
IMPACT_ORDER = {"High": 3, "Medium": 2, "Low": 1}


class Trend(BaseModel):
    """A proposed market opportunity with optional deep research."""

    id: str
    title: str
    summary: str = ""
    interpretation: str = ""
    category: str = ""
    impact: ImpactLevel = "Medium"
    detailed_research: Optional[DetailedResearch] = None
    prototype_prompt: Optional[str] = None
    sources: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    is_heart: bool = False
    generation_type: GenerationType = "manual"
    user_id: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.detailed_research is not None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Trend":
        """Build from a Supabase row, tolerating nulls and bad research blobs."""
        data = dict(row)
        data["sources"] = data.get("sources") or []
        data["is_heart"] = bool(data.get("is_heart"))
        data["impact"] = data.get("impact") if data.get("impact") in IMPACT_ORDER else "Medium"
        data["generation_type"] = data.get("generation_type") or "manual"
        research = data.get("detailed_research")
        if research is not None:
            try:
                data["detailed_research"] = DetailedResearch.model_validate(research)
            except ValueError:
                data["detailed_research"] = None
        return cls.model_validate(data)


class GenerateTrendsRequest(BaseModel):
    """Manual generation round ("Generate More Insights")."""

    count: int = Field(1, ge=MIN_SEED_COUNT, le=MAX_SEED_COUNT)
    searchTopic: Optional[str] = Field(None, max_length=200)


class HeartRequest(BaseModel):
    is_heart: bool


class TrendListResponse(BaseModel):
    trends: List[Trend]
    page: int
    total_pages: int
    total: int
    completed_count: int


class GenerationRoundResponse(BaseModel):
    generated: bool
    trends: List[Trend] = Field(default_factory=list)
    trends_needed: int = 0
    current_week_count: int = 0
    message: Optional[str] = None
