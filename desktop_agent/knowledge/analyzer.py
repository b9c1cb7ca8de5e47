"""Content analysis for the knowledge index.

Text handed to ``index this:`` is sent to Claude, which returns keywords,
themes, entities and a short summary as JSON. When the model is not
available or answers with something that is not a JSON object, a local
word-frequency heuristic produces the keywords instead. Analysis never
fails.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from typing import TYPE_CHECKING, Any

from desktop_agent.knowledge.models import ContentAnalysis
from desktop_agent.llm.client import ModelError, analysis_params

if TYPE_CHECKING:
    from desktop_agent.llm.client import ModelClient

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
MIN_WORD_LENGTH = 4

_NON_WORD = re.compile(r"[^\w\s]")


# -- Prompt building ---------------------------------------------------------


def build_analysis_prompt(content: str) -> str:
    """Build the user-message content sent to the analysis model."""
    return (
        "Analyze the following content and extract:\n"
        f"1. Key concepts and topics (max {MAX_KEYWORDS} keywords)\n"
        "2. Main themes or subjects\n"
        "3. Important entities (people, places, organizations, etc.)\n"
        "4. Content summary (2-3 sentences)\n\n"
        "Content to analyze:\n"
        f"{content}\n\n"
        "Respond in JSON format:\n"
        "{\n"
        '  "keywords": ["keyword1", "keyword2", ...],\n'
        '  "themes": ["theme1", "theme2", ...],\n'
        '  "entities": ["entity1", "entity2", ...],\n'
        '  "summary": "Brief summary of the content"\n'
        "}"
    )


# -- Parsing -----------------------------------------------------------------


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def parse_analysis_result(text: str) -> ContentAnalysis | None:
    """Parse the analysis model's JSON output.

    Returns None when the reply does not contain a JSON object.
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        # Try to extract JSON from markdown fences
        if "```" not in text:
            return None
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            return None
        try:
            data = json.loads(text[start:end])
        except (ValueError, RecursionError):
            return None

    if not isinstance(data, dict):
        return None

    summary = data.get("summary")
    return ContentAnalysis(
        keywords=_string_list(data.get("keywords"))[:MAX_KEYWORDS],
        themes=_string_list(data.get("themes")),
        entities=_string_list(data.get("entities")),
        summary=summary.strip() if isinstance(summary, str) else "",
    )


# -- Fallback ----------------------------------------------------------------


def extract_basic_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Return the most frequent words longer than three characters.

    Punctuation is replaced by spaces before splitting, so "it's" becomes
    "it" and "s". Ties keep first-seen order.
    """
    words = _NON_WORD.sub(" ", text.lower()).split()
    counts = Counter(word for word in words if len(word) >= MIN_WORD_LENGTH)
    return [word for word, _ in counts.most_common(limit)]


def fallback_analysis(text: str) -> ContentAnalysis:
    """Local analysis used when the model cannot help."""
    return ContentAnalysis(keywords=extract_basic_keywords(text))


# -- Analyzer ----------------------------------------------------------------


class ContentAnalyzer:
    """Turns arbitrary text into a compact keyword/summary record."""

    def __init__(self, client: ModelClient | None = None) -> None:
        self._client = client

    async def analyze(self, text: str) -> ContentAnalysis:
        if self._client is None:
            logger.info("No model client configured; using keyword fallback")
            return fallback_analysis(text)

        messages = [{"role": "user", "content": build_analysis_prompt(text)}]
        try:
            reply = await self._client.complete(messages, analysis_params())
        except ModelError:
            logger.warning("Content analysis call failed; using keyword fallback")
            return fallback_analysis(text)

        analysis = parse_analysis_result(reply)
        if analysis is None:
            logger.warning("Failed to parse analysis JSON; using keyword fallback")
            return fallback_analysis(text)
        return analysis
