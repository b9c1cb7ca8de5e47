"""System prompt assembly with knowledge-index retrieval."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from desktop_agent.config import settings

if TYPE_CHECKING:
    from desktop_agent.knowledge.index import KnowledgeIndex
    from desktop_agent.knowledge.models import IndexEntry

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200

OPERATING_INSTRUCTIONS = """\
You are the Autonomous Desktop Agent (ADA), a system that takes natural \
language commands, parses intent, and plans multi-step tasks on Windows \
virtual desktops through native UI automation and screen parsing.

# Core Capabilities
1. Natural language understanding and intent parsing
2. Multi-step task planning and intent confirmation
3. Screen-aware operations via visual indexing (OCR)
4. Full native UI automation
5. Seamless virtual desktop switching
6. Background execution without APIs
7. Indexed memory for contextual retrieval
8. Intelligent feedback and result confirmation
9. Never ask the user to log in or provide credentials
10. Always assume the user is logged in to all applications
11. After opening a browser, type the URL directly in the address bar
12. Use the most relevant application for the task (e.g., Microsoft Edge \
for web tasks, Notepad for text editing)

# Execution Workflow
1. Input --> User command received
2. Intent Parsing --> Understand and build an execution plan
3. Confirmation --> Confirm with the user
4. Desktop Switching --> Switch to virtual desktop
5. Automation Setup --> Open required applications
6. Screen Parsing --> Visually index screen using OCR
7. Execution --> Perform actions via UI automation
8. Feedback Loop --> Monitor for success/failure
9. Result --> Report outcome to user"""

PLAN_CONTRACT = """\
# Intent Parsing Instruction
- Analyze the user's query to identify the intended task.
- Generate a structured JSON action plan with the following format:
{
  "task": "Summary of the task in one sentence",
  "steps": [
    {
      "step": 1,
      "description": "Detailed description of the step",
      "application": "Name of the application (e.g., Microsoft Edge, Notepad)",
      "actionType": "click | type | navigate | wait",
      "target": "UI element or URL to interact with (e.g., button, text field, URL)"
    },
    ...
  ]
}
- Ensure the JSON is valid and properly formatted. Wrap the response in \
triple backticks (```json\\n...\\n```).
- For each step, specify the application, actionType, and target if applicable.
- If the query is not a task (e.g., a question or request for information), \
return an empty action plan: { "task": "", "steps": [] }.
- Handle specific commands like "Post a tweet about AI agents through \
Microsoft Edge" by including the tweet content in the 'type' action step.
- Do not execute the task; only generate the plan."""

CLOSING_REMINDER = "Return only the JSON action plan wrapped in triple backticks (```json\\n...\\n```)."


def _format_index_status(entry_count: int) -> str:
    return "\n".join([
        "# Index Status",
        f"- Total Indexed Entries: {entry_count}",
        "- Retrieval Mode: Enhanced Semantic Lookup",
        "- Matching Algorithm: Keyword/Entity/Theme Overlap",
        "- Relevance Threshold: High",
    ])


def _format_entries(entries: list[IndexEntry]) -> str:
    """Format retrieved index entries for injection into the system prompt."""
    if not entries:
        return ""

    lines = ["# Relevant Indexed Content"]
    for entry in entries:
        excerpt = entry.content[:EXCERPT_CHARS]
        lines.append(f"- [{entry.id}] {excerpt}... (Keywords: {', '.join(entry.keywords)})")
    return "\n".join(lines)


def build_system_prompt(query: str, index: KnowledgeIndex, limit: int | None = None) -> str:
    """Assemble the plan-generation system prompt.

    Sections, in order: operating instructions, index status, relevant
    indexed content (only when retrieval finds something), the JSON
    plan contract, and the user's query. No I/O is performed.
    """
    limit = settings.retrieval_limit if limit is None else limit
    relevant = index.retrieve(query, limit=limit)

    sections = [OPERATING_INSTRUCTIONS, _format_index_status(len(index))]
    entries_text = _format_entries(relevant)
    if entries_text:
        sections.append(entries_text)
    sections.append(PLAN_CONTRACT)
    sections.append(f"# User Query\n{query}")
    sections.append(CLOSING_REMINDER)

    if relevant:
        logger.debug("Prompt includes %d indexed entries", len(relevant))
    return "\n\n".join(sections)


def build_task_messages(
    query: str, index: KnowledgeIndex, limit: int | None = None
) -> list[dict[str, str]]:
    """Role-tagged messages for a plan-generation request."""
    return [
        {"role": "system", "content": build_system_prompt(query, index, limit)},
        {"role": "user", "content": query},
    ]
