"""
Thryve API Models

Pydantic models for data validation and serialization.
"""

from .research import (
    # Seeds
    TrendSeed,
    ProposedTrends,
    SeedRequest,
    SeedResponse,
    # Detailed research
    DetailedResearch,
    DetailedResearchRequest,
    ResearchResponse,
)

from .trend import (
    Trend,
    GenerateTrendsRequest,
    GenerationRoundResponse,
    HeartRequest,
    TrendListResponse,
)

from .chat import (
    MessageStatus,
    CreateChatRequest,
    SendMessageRequest,
    ConversationRequest,
)

__all__ = [
    # Seeds
    "TrendSeed",
    "ProposedTrends",
    "SeedRequest",
    "SeedResponse",
    # Detailed research
    "DetailedResearch",
    "DetailedResearchRequest",
    "ResearchResponse",
    # Trends
    "Trend",
    "GenerateTrendsRequest",
    "GenerationRoundResponse",
    "HeartRequest",
    "TrendListResponse",
    # Chat
    "MessageStatus",
    "CreateChatRequest",
    "SendMessageRequest",
    "ConversationRequest",
]
