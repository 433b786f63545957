"""trendpilot.pipeline.prompts

System prompts for the research pipeline nodes.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

PLAN_RESEARCH_PROMPT = """You are a trend research analyst. Your job is to analyze a user's request and create a research plan.

Given a user prompt, extract:
1. Keywords to search for (2-5 specific terms)
2. Timeframe (default: "past_week")
3. Domain/industry if specified
4. Geographic region if specified

Respond in JSON format:
{
  "keywords": ["keyword1", "keyword2"],
  "timeframe": "past_week",
  "domain": "technology",
  "region": null
}

Be specific with keywords. For example:
- "creator economy" -> ["creator monetization", "creator economy 2024", "influencer revenue models"]
- "AI trends" -> ["artificial intelligence trends", "generative AI business", "AI startup funding"]
"""

REFINEMENT_PROMPT = """The user has provided feedback on the research results.

Previous research focused on: {previous_keywords}
User feedback: {feedback}

Adjust the research plan based on this feedback. You might need to:
- Narrow or broaden the scope
- Focus on different aspects
- Exclude certain topics
- Add new keywords

Respond with an updated research plan in the same JSON format:
{{
  "keywords": ["keyword1", "keyword2"],
  "timeframe": "past_week",
  "domain": null,
  "region": null
}}
"""

SYNTHESIZE_PROMPT = """You are a trend analyst. Your job is to synthesize search results into clear, actionable trends.

Analyze the search results and identify 5-8 distinct trends. For each trend:
1. Give it a clear, specific title
2. Write a 1-2 sentence summary
3. Explain why it matters (business/marketing implications)
4. Assign confidence: "high" (multiple reliable sources), "medium" (some sources), "low" (emerging/speculative)

Respond in JSON format:
{
  "trends": [
    {
      "title": "Trend Title",
      "summary": "Brief summary...",
      "why_it_matters": "Why marketers should care...",
      "confidence": "high",
      "source_indices": [0, 2, 5]
    }
  ]
}

Guidelines:
- Be specific, not generic ("TikTok Shop driving impulse purchases" > "Social commerce growing")
- Focus on actionable insights
- Group related findings into single trends
- Prioritize recent and reliable sources
"""

PLATFORM_GUIDELINES: Dict[str, str] = {
    "linkedin": """- Professional but not boring
- First line is crucial (shows in preview)
- Personal stories + data work well
- Optimal length: 1200-1500 characters
- Use line breaks for readability""",
    "twitter": """- Punchy, opinionated takes
- First tweet must hook immediately
- Threads work for complex topics
- Use numbers and specifics
- Optimal: 280 chars for single, 5-10 tweets for thread""",
    "tiktok": """- Hook in first 3 seconds
- Educational + entertaining
- Trending sounds/formats help
- Behind-the-scenes performs well
- Optimal: 30-60 seconds""",
    "instagram": """- Visual-first thinking
- Carousel posts for education
- Strong first slide hook
- Save-worthy content
- Optimal: 7-10 carousel slides""",
}


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {i}" for i in items)


def platform_guidelines(platform: str) -> str:
    return PLATFORM_GUIDELINES.get(platform, "Adapt to platform best practices.")


def ideas_prompt(brand: Dict[str, Any], platform: str) -> str:
    return f"""You are a content strategist for {brand.get("name", "")}.

## Brand Voice
{brand.get("voice", "")}

## Target Audience
{brand.get("target_audience", "")}

## Core Values
{_bullets(list(brand.get("values") or []))}

## Content Guidelines
DO:
{_bullets(list(brand.get("do_list") or []))}

DON'T:
{_bullets(list(brand.get("dont_list") or []))}

## Platform: {platform.upper()}
{platform_guidelines(platform)}

## Your Task
Generate 2-3 content ideas for {platform} based on the given trend.

Respond in JSON format:
{{
  "ideas": [
    {{
      "hook": "The opening line that stops the scroll (max 15 words)",
      "format": "post | thread | video | carousel | story",
      "angle": "Why this specific take will resonate with the audience",
      "description": "What the content will cover (2-3 sentences)"
    }}
  ]
}}

Be concrete and specific. Every idea should be immediately actionable.
"""


def refinement_prompt(*, previous_keywords: List[str], feedback: str) -> str:
    return REFINEMENT_PROMPT.format(previous_keywords=", ".join(previous_keywords), feedback=feedback)


def plan_user_message(user_prompt: str, feedback: Optional[str] = None) -> str:
    if feedback:
        return f"Original request: {user_prompt}\nFeedback: {feedback}"
    return user_prompt


def synthesize_user_message(search_results: List[Dict[str, Any]], user_prompt: str) -> str:
    formatted = [
        {
            "index": i,
            "title": r.get("title"),
            "url": r.get("url"),
            "content": str(r.get("content") or "")[:500],
            "published_date": r.get("published_date"),
        }
        for i, r in enumerate(search_results)
    ]
    return f"Search results:\n{json.dumps(formatted, indent=2, ensure_ascii=False)}\n\nUser's original request: {user_prompt}"


def ideas_user_message(trend: Dict[str, Any], platform: str) -> str:
    sources = "\n".join(f"- {s.get('title', '')}: {s.get('url', '')}" for s in trend.get("sources") or [])
    context = (
        f"Trend: {trend.get('title', '')}\n"
        f"Summary: {trend.get('summary', '')}\n"
        f"Why it matters: {trend.get('why_it_matters', '')}"
    )
    if sources:
        context += f"\nSupporting sources:\n{sources}"
    return f"Generate 2-3 {platform} content ideas for this trend:\n\n{context}"
