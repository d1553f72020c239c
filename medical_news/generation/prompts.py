"""Prompt templates for headline research and article generation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from ..models import CitedSource

RESEARCH_SYSTEM: Final[str] = (
    "You are a medical research assistant. You provide accurate, well-sourced "
    "information on medical topics drawn from reliable sources, and you cite every source you use."
)

RESEARCH_USER_TEMPLATE: Final[str] = (
    "Research the following medical news headline thoroughly. Provide comprehensive information covering:\n\n"
    "1. Key medical facts and details\n"
    "2. Recent developments or studies related to this topic\n"
    "3. Expert opinions or statements\n"
    "4. Statistics, if available\n"
    "5. Context and background information\n"
    "6. Potential implications for public health\n\n"
    "Focus on reliable medical sources: research institutions, health organisations, "
    "and peer-reviewed studies.\n\n"
    "Headline: {headline}\n\n"
    "Provide detailed research with proper source citations:"
)

ARTICLE_SYSTEM: Final[str] = (
    "You are an experienced medical journalist who writes accurate, engaging and accessible "
    "health articles. Your writing must be:\n\n"
    "- Scientifically accurate and evidence-based\n"
    "- Accessible to general readers without a medical background\n"
    "- Properly attributed with source citations\n"
    "- Objective and unbiased\n"
    "- Clear about the limitations and uncertainties of medical research\n\n"
    "Never make claims beyond what the source material supports."
)

ARTICLE_USER_TEMPLATE: Final[str] = (
    "Write a complete medical news article based on the information below.\n\n"
    "**HEADLINE:** {headline}\n\n"
    "**RESEARCH DATA:**\n{research}\n\n"
    "**SOURCES TO CITE:**\n{sources}\n\n"
    "**REQUIREMENTS:**\n"
    "1. Write a complete news article of 500-800 words\n"
    "2. Use an engaging but professional tone suitable for general readers\n"
    "3. Cite sources inline using the format [Source: URL] after the statements they support\n"
    "4. Structure it with a clear title, a lead paragraph, body paragraphs and a conclusion\n"
    "5. Include relevant medical context and background\n"
    "6. Explain technical terms for a general audience\n"
    "7. Keep journalistic objectivity and accuracy\n"
    "8. Use only information from the provided research and sources\n"
    "9. Close with a short disclaimer advising readers to consult a healthcare professional\n\n"
    "**ARTICLE STRUCTURE:**\n"
    "- Engaging title (if different from the one provided)\n"
    "- Lead paragraph with the key facts (who, what, when, where, why)\n"
    "- 3-4 body paragraphs with details, context and expert opinion\n"
    "- Conclusion with implications or next steps\n"
    "- Medical disclaimer\n\n"
    "Write the article now:"
)

SNIPPET_CHARS: Final[int] = 200


def format_sources_for_prompt(sources: Sequence[CitedSource]) -> str:
    formatted: list[str] = []
    for index, source in enumerate(sources, start=1):
        text = f"{index}. "
        if source.title:
            text += f"{source.title} - "
        text += source.url
        if source.domain:
            text += f" ({source.domain})"
        if source.snippet:
            text += f"\n   Excerpt: {source.snippet[:SNIPPET_CHARS]}..."
        formatted.append(text)
    return "\n\n".join(formatted)


def build_research_prompt(headline: str) -> tuple[str, str]:
    return RESEARCH_SYSTEM, RESEARCH_USER_TEMPLATE.format(headline=headline)


def build_article_prompt(*, headline: str, research: str, sources: Sequence[CitedSource]) -> tuple[str, str]:
    return ARTICLE_SYSTEM, ARTICLE_USER_TEMPLATE.format(
        headline=headline,
        research=research,
        sources=format_sources_for_prompt(sources),
    )
