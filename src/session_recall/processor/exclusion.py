"""Detection of conversations that must stay out of the search index.

A conversation is excluded when the exclusion marker appears anywhere in
it, or when it is itself a summarization request produced by tooling
around this archive. Excluded conversations remain archived and readable.
"""

from collections.abc import Sequence

from session_recall.models import Exchange

EXCLUSION_MARKER = (
    "<INSTRUCTIONS-TO-SESSION-RECALL>DO NOT INDEX THIS CHAT</INSTRUCTIONS-TO-SESSION-RECALL>"
)

# Opening lines of the prompts used to summarize archived conversations
SUMMARIZER_PROMPT_MARKERS = (
    "Summarize this part of a conversation in 2-3 sentences.",
    "Please write a concise, factual summary of this conversation.",
    "Summarize what was accomplished in this conversation.",
)


def exclusion_reason(exchanges: Sequence[Exchange], raw_text: str | None = None) -> str | None:
    """Explain why a conversation is excluded.

    Markers are matched as literal, case-sensitive substrings.

    Args:
        exchanges: Parsed exchanges of the conversation
        raw_text: Raw transcript text, to catch markers outside extracted text

    Returns:
        "marker" or "summarizer_prompt" when excluded, None otherwise
    """
    if raw_text is not None and EXCLUSION_MARKER in raw_text:
        return "marker"

    for exchange in exchanges:
        if EXCLUSION_MARKER in exchange.user_message or EXCLUSION_MARKER in exchange.assistant_message:
            return "marker"

    if exchanges:
        opening = exchanges[0].user_message
        if any(marker in opening for marker in SUMMARIZER_PROMPT_MARKERS):
            return "summarizer_prompt"

    return None


def is_excluded(exchanges: Sequence[Exchange], raw_text: str | None = None) -> bool:
    """Check whether a conversation must never be indexed."""
    return exclusion_reason(exchanges, raw_text) is not None
