"""
Research Service for Thryve trend discovery.

Implements the two research pipelines behind ``POST /api/research``:

1. Seed proposal: broad Tavily queries -> seed prompt -> Gemini -> JSON
   extraction -> schema validation (one simplified fallback prompt when the
   answer is unusable) -> dedup against known titles.
2. Detailed research: three targeted Tavily queries -> research prompt ->
   Gemini -> JSON extraction -> ``DetailedResearch`` validation -> prototype
   brief.

Transport failures are retried inside ``GeminiClient``; search failures
abort the request.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import ValidationError

from app.deduplication import filter_unique_seeds
from app.exceptions import ExtractionError, SeedGenerationError
from app.gemini_provider import GeminiClient
from app.json_extraction import extract_json
from app.models.research import (
    DetailedResearch,
    ProposedTrends,
    ResearchResponse,
    SeedResponse,
    TrendSeed,
)
from app.prompts import (
    build_detailed_queries,
    build_detailed_research_prompt,
    build_prototype_prompt,
    build_seed_fallback_prompt,
    build_seed_prompt,
    build_seed_queries,
)
from app.search_provider import AggregatedResearch, TavilySearchProvider, aggregate_search

logger = logging.getLogger(__name__)

# Search budgets
SEED_RESULTS_PER_QUERY = 10
SEED_TOTAL_CHARS = 10000
DETAIL_RESULTS_PER_QUERY = 10
DETAIL_TOTAL_CHARS = 12000

# Sampling
SEED_TEMPERATURE = 0.4
SEED_FALLBACK_TEMPERATURE = 0.6
DETAIL_TEMPERATURE = 0.3

MAX_RESPONSE_SOURCES = 6
OUTPUT_PREVIEW_CHARS = 500


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class SeedProposal:
    """Validated seeds for one generation round."""

    seeds: List[TrendSeed] = field(default_factory=list)
    generation_type: str = "automatic"

    def to_response(self) -> SeedResponse:
        return SeedResponse(seeds=self.seeds, generationType=self.generation_type)


@dataclass
class DetailedResearchResult:
    """Validated deep research for a single trend."""

    detailed_research: DetailedResearch
    prototype_prompt: str
    sources: List[str] = field(default_factory=list)

    def to_response(self) -> ResearchResponse:
        return ResearchResponse(
            detailed_research=self.detailed_research,
            prototype_prompt=self.prototype_prompt,
            sources=self.sources,
        )


# ============================================================================
# Research Service
# ============================================================================


class ResearchService:
    """
    Orchestrates search aggregation and LLM extraction for trends.

    Both dependencies are injected so routes can build one per request and
    tests can substitute fakes.
    """

    def __init__(self, gemini: GeminiClient, search: TavilySearchProvider):
        self.gemini = gemini
        self.search = search

    # ------------------------------------------------------------------
    # Seeds
    # ------------------------------------------------------------------

    async def propose_trend_seeds(
        self,
        existing_titles: Sequence[str] = (),
        count: int = 1,
        search_topic: Optional[str] = None,
    ) -> SeedProposal:
        """Propose up to *count* seeds that do not duplicate *existing_titles*.

        Raises:
            SearchProviderError: a search query failed
            SeedGenerationError: neither prompt produced valid trends
        """
        existing_titles = list(existing_titles)
        research = await aggregate_search(
            self.search,
            build_seed_queries(search_topic),
            per_query_max_results=SEED_RESULTS_PER_QUERY,
            total_chars_limit=SEED_TOTAL_CHARS,
        )

        prompt = build_seed_prompt(
            research.merged_text,
            research.sources,
            existing_titles,
            count,
            search_topic,
        )
        proposed = await self._first_seed_attempt(prompt)
        if proposed is None:
            logger.info("Seed prompt unusable, attempting fallback generation")
            proposed = await self._fallback_seed_attempt(count)

        seeds = filter_unique_seeds(proposed.trends, existing_titles, limit=count)
        logger.info(
            f"Proposed {len(proposed.trends)} seeds, {len(seeds)} unique "
            f"(requested {count}, topic={search_topic!r})"
        )
        return SeedProposal(
            seeds=seeds,
            generation_type="manual" if search_topic else "automatic",
        )

    async def _first_seed_attempt(self, prompt: str) -> Optional[ProposedTrends]:
        text = await self.gemini.generate_text(prompt, temperature=SEED_TEMPERATURE, json_mode=True)
        parsed = extract_json(text)
        if not isinstance(parsed, dict) or not parsed.get("trends"):
            logger.error(
                f"Model did not return valid trend seeds: {text[:OUTPUT_PREVIEW_CHARS]!r}"
            )
            return None
        try:
            return ProposedTrends.model_validate(parsed)
        except ValidationError as e:
            logger.error(f"Trend seed validation failed: {e}")
            return None

    async def _fallback_seed_attempt(self, count: int) -> ProposedTrends:
        text = await self.gemini.generate_text(
            build_seed_fallback_prompt(count),
            temperature=SEED_FALLBACK_TEMPERATURE,
            json_mode=True,
        )
        parsed = extract_json(text)
        if not isinstance(parsed, dict) or not parsed.get("trends"):
            logger.error(f"Fallback seed generation failed: {text[:OUTPUT_PREVIEW_CHARS]!r}")
            raise SeedGenerationError(
                "AI model failed to generate any trends even with fallback. Please try again."
            )
        try:
            return ProposedTrends.model_validate(parsed)
        except ValidationError as e:
            logger.error(f"Fallback seed validation failed: {e}")
            raise SeedGenerationError(f"Fallback trends failed validation: {e}") from e

    # ------------------------------------------------------------------
    # Detailed research
    # ------------------------------------------------------------------

    async def gather_detailed_sources(self, title: str, category: str) -> AggregatedResearch:
        return await aggregate_search(
            self.search,
            build_detailed_queries(title, category),
            per_query_max_results=DETAIL_RESULTS_PER_QUERY,
            total_chars_limit=DETAIL_TOTAL_CHARS,
        )

    async def generate_detailed_research(self, title: str, category: str) -> DetailedResearchResult:
        """Research a single trend and build its prototype brief.

        Raises:
            SearchProviderError: a search query failed
            ExtractionError: the model output held no JSON object
            ValidationError: the JSON did not match ``DetailedResearch``
        """
        research = await self.gather_detailed_sources(title, category)
        prompt = build_detailed_research_prompt(
            title, category, research.merged_text, research.sources
        )

        text = await self.gemini.generate_text(prompt, temperature=DETAIL_TEMPERATURE, json_mode=True)
        parsed = extract_json(text)
        if parsed is None:
            logger.error(f"Model did not return valid JSON: {text[:OUTPUT_PREVIEW_CHARS]!r}")
            raise ExtractionError("Model did not return valid JSON.")

        detailed = DetailedResearch.model_validate(parsed)
        logger.info(f"Detailed research complete for {title!r}")
        return DetailedResearchResult(
            detailed_research=detailed,
            prototype_prompt=build_prototype_prompt(title, category, detailed),
            sources=research.unique_sources(MAX_RESPONSE_SOURCES),
        )
