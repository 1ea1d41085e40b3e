"""Approximate token estimation for context management."""

import json
import math
import re

CHARS_PER_TOKEN = 4  # Cross-model estimate (EN text/code/JSON)
CJK_TOKENS_PER_10_CHARS = 13  # ~1.3 tokens per CJK character
MESSAGE_OVERHEAD = 4  # Per-message overhead (role, separators)

_CJK_RE = re.compile(
    "[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff\uff66-\uff9f]"
)


def estimate_tokens(text: str) -> int:
    """Estimate token count for a piece of text.

    CJK characters are counted individually (roughly 1.3 tokens each),
    everything else by character count. Partial tokens round up so any
    non-empty text costs at least one token.
    """
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    other = len(text) - cjk
    return math.ceil(cjk * CJK_TOKENS_PER_10_CHARS / 10) + math.ceil(other / CHARS_PER_TOKEN)


def estimate_image_tokens(provider: str) -> int:
    """Estimate tokens for a single image by provider.

    Approximations based on typical chat image sizes (~800x600):
    - Anthropic: (w*h)/750 ~ 640, rounded up to 800
    - OpenAI: tile-based high-detail average ~ 400
    - Gemini: fixed 258 tokens per image
    """
    estimates = {"anthropic": 800, "openai": 400, "gemini": 258}
    return estimates.get(provider, 800)


def _estimate_content_tokens(content, provider: str) -> int:
    if content is None:
        return 0
    if isinstance(content, str):
        return estimate_tokens(content)
    if isinstance(content, list):
        total = 0
        for block in content:
            if isinstance(block, str):
                total += estimate_tokens(block)
            elif isinstance(block, dict):
                block_type = block.get("type")
                if block_type == "text":
                    total += estimate_tokens(str(block.get("text", "")))
                elif block_type in ("image_url", "image"):
                    total += estimate_image_tokens(provider)
                elif block_type == "tool_result":
                    total += _estimate_content_tokens(block.get("content"), provider)
                elif block_type == "tool_use":
                    total += estimate_tokens(str(block.get("name", "")))
                    total += estimate_tokens(json.dumps(block.get("input", {}), default=str))
        return total
    return estimate_tokens(str(content))


def estimate_message_tokens(message: dict, provider: str = "anthropic") -> int:
    """Estimate tokens for a single message, including framing overhead."""
    total = MESSAGE_OVERHEAD
    total += _estimate_content_tokens(message.get("content"), provider)

    # Tool calls in assistant messages
    for tc in message.get("tool_calls") or []:
        fn = tc.get("function", {})
        args = fn.get("arguments", "")
        if isinstance(args, dict):
            args = json.dumps(args)
        total += estimate_tokens(str(fn.get("name", "")))
        total += estimate_tokens(str(args))

    return total


def estimate_messages_tokens(messages: list[dict], provider: str = "anthropic") -> int:
    """Estimate total tokens for a message list."""
    return sum(estimate_message_tokens(msg, provider) for msg in messages)
