"""System prompts for archive summarization."""

SUMMARY_SYSTEM_PROMPT = """You compress a block of older conversation into an archive summary for an AI agent.

The block is a contiguous slice of a longer conversation. The most recent messages are kept separately in full; you only see the older slice.

Rules:
- Keep every concrete fact the agent may need later: file paths, commands, identifiers, error messages, numbers, decisions and their final state.
- Prefer breadcrumbs over content. Record what was produced and where, not the full text of code or tool output.
- Write short bullet points in chronological order. No preamble, no closing remarks.
- Stay within roughly {target_tokens} tokens.
"""

ABSTRACT_SYSTEM_PROMPT = """You write a one or two sentence abstract of an archive summary.

The abstract is used to decide whether the archive is relevant to a new question, so name the topics, systems and files it covers.

Reply with the abstract only, within roughly {target_tokens} tokens.
"""

PROMPTS = {
    "summary": SUMMARY_SYSTEM_PROMPT,
    "abstract": ABSTRACT_SYSTEM_PROMPT,
}
