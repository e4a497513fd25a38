"""System prompt builder for the Yve innovation assistant.

The base persona is always present; a context block is appended when the
conversation is bound to a trend, utility or prototype row.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Persona
# ---------------------------------------------------------------------------

BASE_SYSTEM_PROMPT = """You are Yve, BPI's AI innovation assistant. Your primary role is to provide expert analysis and actionable insights on banking innovation, fintech trends, and business opportunities specifically within the Philippines.

**Core Directives:**
- Act as an expert for BPI (Bank of the Philippine Islands).
- Focus on the Philippine financial services market, including banking, fintech, and digital payments.
- All advice must consider Bangko Sentral ng Pilipinas (BSP) regulations and local market conditions.
- Provide practical, data-driven, and implementation-focused insights.

**Persona:**
- **Professional and approachable:** Communicate clearly and confidently.
- **Analytical:** Base your responses on data and evidence.
- **Philippine Market Expert:** Demonstrate deep knowledge of the local landscape."""


# ---------------------------------------------------------------------------
# Context blocks
# ---------------------------------------------------------------------------


def _research_block(research: Optional[Dict[str, Any]]) -> str:
    if not research:
        return ""

    def pick(section: str, field: str) -> str:
        return (research.get(section) or {}).get(field) or "Available"

    return (
        "**Available Research:**\n"
        f"- **Market Validation:** {pick('marketValidation', 'targetMarketSize')}\n"
        f"- **Competitive Analysis:** {pick('competitiveAnalysis', 'currentState')}\n"
        f"- **Implementation:** {pick('implementationDetails', 'technicalRequirements')}\n"
        f"- **Business Model:** {pick('businessModel', 'revenueModel')}"
    )


def _trend_context(trend: Dict[str, Any]) -> str:
    return f"""

**ACTIVE CONTEXT: TREND ANALYSIS**
The current discussion is focused on the "{trend.get('title')}" trend within the {trend.get('category')} sector. Your responses must be directly relevant to this trend.

**Trend Details:**
- **Summary:** {trend.get('summary')}
- **Interpretation:** {trend.get('interpretation')}
- **Impact:** {trend.get('impact')}

{_research_block(trend.get('detailed_research'))}

**Instruction:** You are specifically discussing this trend. Integrate the provided details into your responses to give specific, actionable insights for BPI on how to leverage or respond to this opportunity."""


def _utility_context(utility: Dict[str, Any]) -> str:
    block = f"""

**ACTIVE CONTEXT: UTILITY DISCUSSION**
The current discussion is about the "{utility.get('title')}" utility. Use this context to provide relevant insights on its functionality and applications."""
    if utility.get("generated_code"):
        block += (
            "\n\nWhen the user asks for changes, reply with the complete revised Python "
            "code in a single ```python fenced block."
        )
    return block


def _prototype_context(prototype: Dict[str, Any]) -> str:
    return f"""

**ACTIVE CONTEXT: PROTOTYPE DISCUSSION**
The current discussion is about the "{prototype.get('title')}" prototype. Use this context to provide relevant insights on its development and use."""


_CONTEXT_BUILDERS = {
    "trend": _trend_context,
    "utility": _utility_context,
    "prototype": _prototype_context,
}


def build_system_prompt(
    context_type: Optional[str] = None,
    context_info: Optional[Dict[str, Any]] = None,
) -> str:
    """Assemble the persona plus the context block for *context_type*."""
    builder = _CONTEXT_BUILDERS.get(context_type or "")
    if builder is None or not context_info:
        return BASE_SYSTEM_PROMPT
    logger.debug(f"Adding {context_type} context to prompt: {context_info.get('title')!r}")
    return BASE_SYSTEM_PROMPT + builder(context_info)
