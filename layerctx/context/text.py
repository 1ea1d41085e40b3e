"""Text helpers shared by the summarizer, indexer and retriever."""

import re

from layerctx.context.tokens import estimate_tokens

STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "to", "for", "of", "in", "on", "at",
    "is", "are", "was", "were", "be", "been", "this", "that", "it", "as",
    "with", "by", "from", "about", "into", "through", "can", "could",
    "should", "would", "you", "your", "we", "they", "their", "our", "i",
    "he", "she", "them", "his", "her",
    # Interrogatives carry no topical signal
    "what", "which", "where", "when", "how", "why", "who", "do", "does",
    "did", "during", "me", "my", "show", "tell", "please",
})

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9_/.\-]+")
_WORD_RE = re.compile(r"\S+")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of blank lines and inline spaces, then strip."""
    text = text.replace("\r\n", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    return text.strip()


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens with stopwords and single characters dropped.

    Dots, slashes and dashes stay inside tokens so paths like
    ``src/deploy.ts`` survive as one token. Trailing sentence punctuation
    is stripped.
    """
    tokens = []
    for raw in _TOKEN_SPLIT_RE.split(text.lower()):
        token = raw.strip(".-/")
        if len(token) < 2 or token in STOPWORDS:
            continue
        tokens.append(token)
    return tokens


def extract_keywords(text: str, limit: int = 12) -> list[str]:
    """Most frequent tokens, ties broken by first appearance."""
    counts: dict[str, int] = {}
    for token in tokenize(text):
        counts[token] = counts.get(token, 0) + 1
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [token for token, _ in ranked[:limit]]


def estimate_similarity(query: str, text: str) -> float:
    """Share of query tokens present in ``text``, in [0, 1].

    A verbatim phrase match adds a 0.15 bonus.
    """
    query_tokens = set(tokenize(query))
    if not query_tokens:
        return 0.0
    text_tokens = set(tokenize(text))
    score = len(query_tokens & text_tokens) / len(query_tokens)

    phrase = normalize_whitespace(query).lower()
    if phrase and phrase in text.lower():
        score += 0.15
    return min(1.0, score)


def trim_to_token_target(text: str, target_tokens: int) -> str:
    """Trim ``text`` so its estimate fits ``target_tokens``.

    Cuts at word boundaries, keeping original line breaks. A single word
    larger than the target is cut by characters. Trimming an already
    trimmed text returns it unchanged.
    """
    text = normalize_whitespace(text)
    if target_tokens <= 0 or not text:
        return ""
    if estimate_tokens(text) <= target_tokens:
        return text

    ends = [m.end() for m in _WORD_RE.finditer(text)]
    lo, hi = 0, len(ends)
    # Largest word count whose prefix fits
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if estimate_tokens(text[:ends[mid - 1]]) <= target_tokens:
            lo = mid
        else:
            hi = mid - 1
    if lo > 0:
        return text[:ends[lo - 1]]

    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if estimate_tokens(text[:mid]) <= target_tokens:
            lo = mid
        else:
            hi = mid - 1
    return text[:lo].strip()


def split_sentences(text: str) -> list[str]:
    """Split on sentence-ending punctuation followed by whitespace."""
    return [s.strip() for s in re.split(r"(?<=[.!?])\s+", text) if s.strip()]
