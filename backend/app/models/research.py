"""Research models for the Thryve API.

Schemas for trend seeds and detailed research produced by the LLM, plus
request/response bodies of ``POST /api/research``. Field names follow the
camelCase JSON the model is asked to emit.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


ImpactLevel = Literal["High", "Medium", "Low"]

MIN_SEED_COUNT = 1
MAX_SEED_COUNT = 5


# ============================================================================
# Seeds
# ============================================================================


class TrendSeed(BaseModel):
    """Minimal trend proposal prior to deep research."""

    title: str
    category: str
    impact: ImpactLevel
    summary: str
    interpretation: str


class ProposedTrends(BaseModel):
    """Envelope the seed prompt asks the model to return."""

    trends: List[TrendSeed] = Field(..., min_length=MIN_SEED_COUNT, max_length=MAX_SEED_COUNT)


# ============================================================================
# Detailed research
# ============================================================================


class KeyInsights(BaseModel):
    summary: str
    interpretation: str


class MarketValidation(BaseModel):
    targetMarketSize: str
    adoptionRate: str
    revenueOpportunity: str


class CompetitiveAnalysis(BaseModel):
    currentState: str
    bpiPosition: str
    marketWindow: str
    competitors: List[str]


class ImplementationDetails(BaseModel):
    technicalRequirements: str
    developmentTime: str
    investmentNeeded: str
    riskFactors: List[str]


class SuccessMetrics(BaseModel):
    targetKPIs: List[str]
    pilotStrategy: str
    roiTimeline: str


class SupportingEvidence(BaseModel):
    caseStudies: List[str]
    localContext: str
    regulatory: str


class BusinessModel(BaseModel):
    revenueModel: str
    keyCustomers: List[str]
    valuePropositions: List[str]
    keyPartnerships: List[str]
    bpiAlignment: str
    risks: List[str]
    riskMitigation: List[str]


class BusinessImpact(BaseModel):
    customerSatisfactionIncrease: str
    revenueGrowthPotential: str
    marketCoverageExpansion: str


class DetailedResearch(BaseModel):
    """Schema-shaped analysis attached to a trend. Every section is required."""

    keyInsights: KeyInsights
    marketValidation: MarketValidation
    competitiveAnalysis: CompetitiveAnalysis
    implementationDetails: ImplementationDetails
    successMetrics: SuccessMetrics
    supportingEvidence: SupportingEvidence
    businessModel: BusinessModel
    businessImpact: BusinessImpact


# ============================================================================
# API bodies
# ============================================================================


class DetailedResearchRequest(BaseModel):
    """Request body for single-trend deep research."""

    title: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)

    @field_validator("title", "category")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class SeedRequest(BaseModel):
    """Request body for bootstrap seed proposal."""

    bootstrap: bool = True
    mode: Literal["seeds"] = "seeds"
    existingTrends: List[str] = Field(default_factory=list)
    count: int = Field(1, ge=MIN_SEED_COUNT, le=MAX_SEED_COUNT)
    searchTopic: Optional[str] = None

    @field_validator("existingTrends", mode="before")
    @classmethod
    def coerce_existing(cls, v):
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            raise ValueError("existingTrends must be a list of titles")
        return [str(t) for t in v if t]

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, v):
        return v or 1  # 0 / null -> 1

    @property
    def topic(self) -> Optional[str]:
        return self.searchTopic.strip() if self.searchTopic and self.searchTopic.strip() else None


class ResearchResponse(BaseModel):
    detailed_research: DetailedResearch
    prototype_prompt: str
    sources: List[str]


class SeedResponse(BaseModel):
    seeds: List[TrendSeed]
    generationType: Literal["automatic", "manual"]
