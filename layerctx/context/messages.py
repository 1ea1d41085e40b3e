"""Message flattening and rendering of the archived-context block."""

from typing import Any

from layerctx.context.text import normalize_whitespace
from layerctx.context.tokens import MESSAGE_OVERHEAD, estimate_tokens

CONTEXT_HEADER = (
    "[Archived Context]\n"
    "Compacted history from earlier in this conversation. "
    "Recent messages follow in full."
)
SECTION_SEPARATOR = "\n\n"


def content_to_text(content: Any) -> str:
    """Flatten message content (string or block list) to plain text.

    Image blocks become an ``[image]`` marker; other non-text blocks are
    dropped.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict):
                if block.get("type") == "text":
                    parts.append(str(block.get("text", "")))
                elif block.get("type") in ("image_url", "image"):
                    parts.append("[image]")
                elif block.get("type") == "tool_result":
                    parts.append(content_to_text(block.get("content")))
        return "\n".join(p for p in parts if p)
    return str(content)


def message_to_text(message: dict) -> str:
    """Plain text of a message, including tool-call names."""
    text = content_to_text(message.get("content"))
    calls = [
        tc.get("function", {}).get("name", "")
        for tc in message.get("tool_calls") or []
    ]
    calls = [name for name in calls if name]
    if calls:
        text = f"{text}\n[called: {', '.join(calls)}]".strip()
    return text


def render_transcript(messages: list[dict]) -> str:
    """Render messages as ``ROLE: text`` paragraphs."""
    lines = []
    for msg in messages:
        text = normalize_whitespace(message_to_text(msg))
        if not text:
            continue
        role = str(msg.get("role", "unknown")).upper()
        lines.append(f"{role}: {text}")
    return "\n\n".join(lines)


def latest_user_query(messages: list[dict]) -> str:
    """Text of the newest user message, or empty string."""
    for msg in reversed(messages):
        if msg.get("role") == "user":
            text = normalize_whitespace(content_to_text(msg.get("content")))
            if text:
                return text
    return ""


# ── archived context block ──────────────────────────────────────


def format_selection(chunk_start: int, chunk_end: int, layer: str, content: str) -> str:
    """Render one archive entry of the context block."""
    kind = "raw excerpt" if layer == "L2" else "summary"
    return f"[messages {chunk_start + 1}-{chunk_end} | {kind}]\n{content}"


def selection_tokens(section: str) -> int:
    """Upper-bound token cost of a rendered section inside the block."""
    return estimate_tokens(section + SECTION_SEPARATOR)


def context_frame_tokens() -> int:
    """Token cost of the block's message framing and header."""
    return MESSAGE_OVERHEAD + estimate_tokens(CONTEXT_HEADER + SECTION_SEPARATOR)


def format_context_block(sections: list[str]) -> str:
    return CONTEXT_HEADER + SECTION_SEPARATOR + SECTION_SEPARATOR.join(sections)


def build_context_message(sections: list[str], role: str = "user") -> dict[str, Any]:
    """Synthetic leading message carrying the archived context."""
    return {"role": role, "content": format_context_block(sections)}
