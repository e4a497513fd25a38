"""
Prompt and query templates for the trend research pipeline.

Pure string templating: nothing here talks to the network. Builders embed
the BPI strategic tracks, the caller's topic or trend, the titles to avoid
and a literal JSON example the model must mimic.
"""

import json
from typing import List, Optional, Sequence

from app.models.research import DetailedResearch

# Research prompt budgets
SEED_PROMPT_SOURCE_LIMIT = 8
SEED_PROMPT_RESEARCH_CHARS = 8000
DETAIL_PROMPT_SOURCE_LIMIT = 8
DETAIL_PROMPT_RESEARCH_CHARS = 10000

DEFAULT_VALUE_PROPOSITION = "Innovative banking solution for Filipino users"


# ============================================================================
# Search queries
# ============================================================================


def build_seed_queries(search_topic: Optional[str] = None) -> List[str]:
    """Broad queries for seed proposal; topic-specific when a topic is given."""
    if search_topic:
        return [
            f"{search_topic} Philippines banking BPI fintech trends 2024 2025 opportunities",
            f"{search_topic} BSP regulation Philippines banking digital transformation innovation",
            f"{search_topic} market analysis competitive landscape Philippines financial services",
        ]
    return [
        "Philippines banking fintech trends 2024 2025 BPI digital transformation BSP regulation",
        "AI fraud detection sustainable finance SME lending digital payments Philippines banking opportunities",
    ]


def build_detailed_queries(title: str, category: str) -> List[str]:
    """Three comprehensive queries for single-trend deep research."""
    return [
        f"{title} Philippines banking BPI {category} market analysis competitive landscape 2024",
        f"BSP {category} regulation Philippines banking implementation cost ROI case study",
        f"{title} adoption rate user behavior Philippines fintech UnionBank RCBC technical requirements",
    ]


# ============================================================================
# Seed proposal
# ============================================================================

BPI_TRACKS = """\
Track 1: Digitalization - Autonomous agents that digitize and optimize core banking processes, from product development to service delivery. Focus on AI agents for dynamic product prototyping, risk-based authentication with zero-trust principles, and AI-powered digital twins for branch network optimization.

Track 2: ESG+E2 - Financial inclusion and sustainable business growth. Focus on AI for green finance & ESG-aligned product innovation, ethical microfinance lending, and evaluating ESG alignment of SMEs.

Track 3: Hyper-Personalization and Customer Experience - AI agents that independently orchestrate personalized customer journeys. Focus on sentiment-aware multi-channel CX orchestration, proactive issue resolution, and AI-driven financial 'what-if' sandbox tools.

Track 4: Workplace Productivity and Future of Work - Autonomous systems that augment employee capabilities. Focus on computer vision for banking operations, predictive employee well-being & retention, and semi-autonomous decision intelligence.

Track 5: Synergies and Ecosystem Collaboration - Agentic AI that manages partnerships, compliance monitoring, and risk assessment. Focus on improving inter-departmental synergies, BPI-Ayala company collaboration, and ecosystem vendor/partner coordination."""

BPI_TRACKS_SHORT = """\
- Track 1: Digitalization (AI agents, product prototyping, zero-trust authentication, digital twins)
- Track 2: ESG+E2 (Green finance, microfinance, SME ESG evaluation)
- Track 3: Hyper-Personalization (Sentiment-aware CX, proactive resolution, financial sandbox)
- Track 4: Workplace Productivity (Computer vision, employee well-being, decision intelligence)
- Track 5: Synergies & Collaboration (Inter-departmental, Ayala partnerships, ecosystem coordination)"""

SEED_JSON_EXAMPLE = """\
{
  "trends": [
    {
      "title": "string",
      "category": "string",
      "impact": "High" | "Medium" | "Low",
      "summary": "What the opportunity is, in 1-2 sentences.",
      "interpretation": "Why it matters to BPI, mentioning leverage points and regulatory considerations."
    }
  ]
}"""


def _existing_trends_block(existing_titles: Sequence[str]) -> str:
    if not existing_titles:
        return ""
    numbered = "\n".join(f"{i}. {title}" for i, title in enumerate(existing_titles, start=1))
    return f"\n\nEXISTING TRENDS TO AVOID DUPLICATING:\n{numbered}"


def _topic_focus_block(search_topic: Optional[str]) -> str:
    if not search_topic:
        return ""
    return (
        f'\n\nSPECIFIC FOCUS AREA: "{search_topic}"\n'
        f'Generate trends that are directly related to or inspired by "{search_topic}" in the '
        f"context of banking and financial services. Consider how \"{search_topic}\" could create "
        f"new opportunities, solve existing problems, or be applied innovatively in the BPI ecosystem."
    )


def build_seed_prompt(
    merged_text: str,
    sources: Sequence[str],
    existing_titles: Sequence[str],
    count: int,
    search_topic: Optional[str] = None,
) -> str:
    """Prompt asking for *count* new trend seeds as ``{"trends": [...]}``."""
    topic_priority = (
        f'- PRIORITIZE trends directly related to "{search_topic}" - think creatively about how '
        f"this topic intersects with banking, fintech, and financial services\n"
        if search_topic
        else ""
    )
    source_lines = "\n".join(list(sources)[:SEED_PROMPT_SOURCE_LIMIT])

    prompt = f"""
Using the consolidated research and sources below, propose {count} COMPLETELY NEW whitespace opportunities SPECIFIC to the BPI (Bank of the Philippine Islands) ecosystem.{_topic_focus_block(search_topic)}

BPI INNOVATION CHALLENGE CONTEXT (Use as guidance, not limitations):
While considering these strategic focus areas, feel free to explore beyond them for innovative opportunities:

{BPI_TRACKS}

CRITICAL REQUIREMENTS:
- Use the above tracks as INSPIRATION and CONTEXT, but don't limit yourself to only these areas
{topic_priority}- Explore emerging technologies, cultural trends, regulatory changes, or market shifts that could create new opportunities
- Consider cross-industry innovations that could be adapted for banking (e.g., gaming, social media, e-commerce, healthcare)
- Look for underserved demographics, untapped use cases, or novel business models
- Each idea must be GENUINELY DIFFERENT from existing trends{_existing_trends_block(existing_titles)}
- NO DUPLICATES or similar concepts to what's already been generated
- Focus on UNEXPLORED niches, emerging technologies, or underserved market segments
- Each trend must be either:
  1) A capability BPI NEEDS but doesn't yet have (reasonable assumption), or
  2) An expansion that leverages existing BPI assets into a NEW product/segment, or
  3) A partnership-led play BPI has NOT launched (e.g., with telcos, LGUs, fintechs, MSME platforms), or
  4) An innovative application of emerging technology or cultural trends to banking
- Must be feasible within PH regulatory context (BSP) and aligned to BPI's core strengths
- Avoid well-known, already-launched BPI features
- Generate DIVERSE categories: explore fintech, insurtech, proptech, agritech, edtech, healthtech intersections with banking
- Keep titles crisp and executive-friendly
- Think beyond traditional banking - consider lifestyle, entertainment, social impact, sustainability angles

Return JSON exactly like:
{SEED_JSON_EXAMPLE}
Provide exactly {count} trends. Only return JSON with no commentary.

[SOURCES]
{source_lines}
[RESEARCH]
{merged_text[:SEED_PROMPT_RESEARCH_CHARS]}
"""
    return prompt.strip()


def build_seed_fallback_prompt(count: int) -> str:
    """Simplified seed prompt used once when the first answer is unusable."""
    return f"""Generate {count} innovative banking/fintech trends for BPI Philippines. Return JSON only:
{{
  "trends": [
    {{
      "title": "Brief descriptive title",
      "category": "Category name",
      "impact": "High",
      "summary": "Brief description of the opportunity.",
      "interpretation": "Why this matters to BPI."
    }}
  ]
}}"""


# ============================================================================
# Detailed research
# ============================================================================

DETAILED_JSON_EXAMPLE = """\
{
  "keyInsights": {
    "summary": "Key insight - what the opportunity is",
    "interpretation": "Business implication - why it matters to BPI"
  },
  "marketValidation": { "targetMarketSize": "string", "adoptionRate": "string", "revenueOpportunity": "string" },
  "competitiveAnalysis": { "currentState": "string", "bpiPosition": "string", "marketWindow": "string", "competitors": ["string"] },
  "implementationDetails": { "technicalRequirements": "string", "developmentTime": "string", "investmentNeeded": "string", "riskFactors": ["string"] },
  "successMetrics": { "targetKPIs": ["string"], "pilotStrategy": "string", "roiTimeline": "string" },
  "supportingEvidence": { "caseStudies": ["string"], "localContext": "string", "regulatory": "string" },
  "businessModel": {
    "revenueModel": "Primary revenue model",
    "keyCustomers": ["Customer segment 1", "Customer segment 2", "Customer segment 3"],
    "valuePropositions": ["Value proposition 1", "Value proposition 2", "Value proposition 3"],
    "keyPartnerships": ["Partnership 1", "Partnership 2", "Partnership 3"],
    "bpiAlignment": "How this model aligns with BPI's existing assets and capabilities",
    "risks": ["Business model risk 1", "Business model risk 2", "Business model risk 3"],
    "riskMitigation": ["Risk mitigation strategy 1", "Risk mitigation strategy 2", "Risk mitigation strategy 3"]
  },
  "businessImpact": {
    "customerSatisfactionIncrease": "Provide specific percentage estimate (e.g., '15-25% increase in customer satisfaction scores') based on market research, competitive analysis, and similar implementations. Include reasoning for the estimate.",
    "revenueGrowthPotential": "Provide specific revenue impact estimate (e.g., 'PHP 2.5-4.2B additional annual revenue within 3 years') based on market size, adoption rates, and pricing analysis. Include breakdown of revenue sources.",
    "marketCoverageExpansion": "Provide specific percentage of previously underserved customers that will be reached (e.g., '35-45% of currently unbanked SMEs in Metro Manila') based on demographic analysis and market gaps. Include target segments."
  }
}"""


def build_detailed_research_prompt(
    title: str,
    category: str,
    merged_text: str,
    sources: Sequence[str],
) -> str:
    """Prompt asking for a full ``DetailedResearch`` object."""
    source_lines = "\n".join(list(sources)[:DETAIL_PROMPT_SOURCE_LIMIT])

    prompt = f"""
Based on this market research data about '{title}' ({category}) for BPI (Bank of the Philippine Islands):

BPI INNOVATION CHALLENGE CONTEXT (Reference framework, not constraints):
While these strategic tracks provide valuable context, consider broader opportunities:
{BPI_TRACKS_SHORT}

Consider also:
- Cross-industry innovations and emerging technology applications
- Cultural and demographic trends in the Philippines
- Regulatory changes and market evolution opportunities
- Novel business models and partnership structures
- Underserved market segments and use cases

Provide detailed analysis in JSON format focusing on:
- Key insights and business implications
- Market validation specific to the Philippine market
- Competitive position vs UnionBank, RCBC, Security Bank
- Cost-effective implementation timeline and required investment
- BSP regulatory factors
- KPIs and projected ROI
- Risks and mitigation strategies
- Business model analysis including revenue streams, customer segments, and strategic alignment
- **BUSINESS IMPACT ASSESSMENT with specific quantitative estimates**

Format strictly according to "detailedResearch":
{DETAILED_JSON_EXAMPLE}

**CRITICAL: For businessImpact section, provide SPECIFIC, QUANTITATIVE estimates with clear reasoning based on the research data. Do not use generic statements. Base estimates on:**
- Market research data and competitive benchmarks
- Philippine banking industry statistics
- Similar implementations in comparable markets
- BPI's current market position and capabilities
- Demographic and economic data for target segments

Generate realistic Philippine market data and comprehensive business model analysis with specific risk mitigation strategies.
Return only JSON with no commentary.

[SOURCES]
{source_lines}
[RESEARCH]
{merged_text[:DETAIL_PROMPT_RESEARCH_CHARS]}
"""
    return prompt.strip()


# ============================================================================
# Prototype brief
# ============================================================================


def _dump(section) -> str:
    return json.dumps(section.model_dump(), ensure_ascii=False)


def build_prototype_prompt(title: str, category: str, research: DetailedResearch) -> str:
    """Deterministic markdown brief handed to the prototype generator."""
    kpis = ", ".join(research.successMetrics.targetKPIs[:5])
    risks = ", ".join(research.implementationDetails.riskFactors[:3])
    competitors = ", ".join(research.competitiveAnalysis.competitors[:3])
    value_proposition = research.keyInsights.summary or DEFAULT_VALUE_PROPOSITION

    context = f"""{{
  "trend": {json.dumps(title, ensure_ascii=False)},
  "category": {json.dumps(category, ensure_ascii=False)},
  "keyInsights": {_dump(research.keyInsights)},
  "marketValidation": {_dump(research.marketValidation)},
  "businessModel": {_dump(research.businessModel)},
  "competitiveAnalysis": {_dump(research.competitiveAnalysis)},
  "implementationDetails": {_dump(research.implementationDetails)},
  "successMetrics": {_dump(research.successMetrics)},
  "supportingEvidence": {_dump(research.supportingEvidence)},
  "businessImpact": {_dump(research.businessImpact)}
}}"""

    prompt = f"""{title}

**CRITICAL: Create a COMPLETE, PRODUCTION-READY prototype with ALL features fully functional. No placeholders, no broken interactions, and every button must be clickable.**

---

## **UI AESTHETIC PRIORITY**

### **Design Philosophy**
UI aesthetic is the TOP PRIORITY. Create a stunning, modern interface that:
- **Looks professional and polished** - comparable to the best fintech apps globally
- **Every button MUST be clickable** and provide proper feedback
- **Smooth interactions** with hover effects, transitions, and micro-animations
- **Visual hierarchy** that guides users naturally through the interface
- **Consistent spacing and alignment** throughout all components

### **Typography Requirements (MANDATORY)**
- **Use the most appropriate modern font** for banking applications
- **Ensure excellent readability** across all device sizes
- **Strong typography hierarchy** with clear distinctions between headings, body text, and labels

---

## **CORE FUNCTIONALITY REQUIREMENTS**

### **Interactive Elements (NON-NEGOTIABLE)**
- **EVERY button must be clickable** and perform an action. Make sure to code all buttons and their corresponding routes.
- **ALL forms must have working validation** with proper error states
- **Navigation must work seamlessly** between all screens
- **Loading states** for all async operations
- **Success/error feedback** for all user actions

### **User Experience Excellence**
- **Intuitive navigation** that requires no explanation
- **Mobile-first design** optimized for touch interactions and mobile screen size
- **Accessible design** with proper contrast and touch targets
- For profile avatars, automatically generate initials from the user's name (e.g., "Juan Dela Cruz" -> "JD").

---

## **Philippine Banking Context**

### **Target Market Understanding**
Create a prototype specifically for "{title}" in the {category} domain that serves:
- Filipino banking customers with varying tech literacy levels
- Mobile-first users who rely on smartphones for banking
- Users who value security, convenience, and clear communication

### **Local Considerations**
- Use familiar financial terminology and concepts
- Consider Filipino user behavior patterns
- Implement trust-building elements (security badges, clear policies)
- Support common use cases in Philippine banking

---

## **Technical Implementation**

### **Technology Stack Requirements**
- **Framework:** Next.js 14+ with App Router
- **Styling:** Tailwind CSS for consistent, maintainable styles
- **Components:** Use shadcn/ui or similar high-quality component library
- **State Management:** React hooks for clean, predictable state
- **TypeScript:** For type safety and better development experience

---

### **Core Feature Implementation**
Based on the research analysis for "{title}":

**Primary Value Proposition:** {value_proposition}

**Research Highlights:**
- **Target KPIs:** {kpis or "Not specified"}
- **Key Risks:** {risks or "Not specified"}
- **Competitors:** {competitors or "Not specified"}

**Key Features to Implement:**
1. **Main functionality** directly addressing "{title}"
2. **Supporting features** that enhance the core experience
3. **User dashboard** with relevant metrics and insights
4. **Security features** appropriate for banking applications

---

## **FINAL MANDATE**

**Create a prototype that:**
1. **Looks absolutely stunning** - UI aesthetic is the highest priority
2. **Functions flawlessly** - every button clickable, every feature working
3. **Solves real problems** for Filipino banking customers
4. **Demonstrates clear business value** for BPI
5. **Uses appropriate design choices** - colors are guidance, choose what works best

**Context Data:**
```json
{context}
```

**BUILD A PROTOTYPE THAT PRIORITIZES STUNNING VISUALS, PERFECT FUNCTIONALITY, AND BUSINESS VALUE.**"""
    return prompt.strip()


PROTOTYPE_REQUIREMENTS_SUFFIX = """
CRITICAL REQUIREMENTS for functional prototype:
- All buttons must be clickable and functional
- Forms must have proper validation and submission handling
- Navigation elements must work properly
- Interactive elements should provide user feedback
- Include hover states and loading states where appropriate
- Ensure mobile responsiveness
- Add proper error handling for user actions
- Make the interface intuitive and user-friendly

Technical Implementation:
- Use React hooks for state management
- Implement proper event handlers for all interactive elements
- Add form validation with clear error messages
- Include loading spinners for async operations
- Use modern UI patterns and accessibility best practices
- Ensure all clickable elements have proper cursor styles
- Add smooth transitions and animations where appropriate

Focus on creating a fully functional, production-ready prototype that users can actually interact with meaningfully."""


def build_auto_prototype_prompt(prototype_prompt: str) -> str:
    """Prototype brief plus the interaction checklist used for auto-generation."""
    return f"{prototype_prompt}\n{PROTOTYPE_REQUIREMENTS_SUFFIX}"
