"""Shared fixtures: a three-topic conversation corpus."""

import pytest


def build_topic_rounds(topic: str, rounds: int, seed: int) -> list[dict]:
    messages = []
    for i in range(rounds):
        idx = seed + i
        if topic == "deployment":
            messages.append({
                "role": "user",
                "content": f"Deployment checklist item {idx}: verify rollout gates, rollback command, "
                           f"deploy.ts health checks, and canary status.",
            })
            messages.append({
                "role": "assistant",
                "content": f"Logged deployment readiness {idx}. Captured release checklist evidence, "
                           f"rollback sequence, and incident prevention controls.",
            })
        elif topic == "billing":
            messages.append({
                "role": "user",
                "content": f"Billing migration item {idx}: validate invoice retry policy, duplicate "
                           f"charge prevention, and reconciliation checkpoints.",
            })
            messages.append({
                "role": "assistant",
                "content": f"Recorded billing migration {idx}. Added invoice retry safeguards, "
                           f"settlement checks, and alerting scope.",
            })
        else:
            messages.append({
                "role": "user",
                "content": f"Infrastructure ops task {idx}: confirm backup windows, restore "
                           f"verification, and infra maintenance handoff rules.",
            })
            messages.append({
                "role": "assistant",
                "content": f"Captured infra operations {idx}. Backup integrity, restore drill "
                           f"outcomes, and maintenance ownership are documented.",
            })
    return messages


def build_conversation(query: str | None = None, rounds: int = 8) -> list[dict]:
    """Deployment, then billing, then infra rounds, optionally ending with ``query``."""
    messages = []
    messages += build_topic_rounds("deployment", rounds, 0)
    messages += build_topic_rounds("billing", rounds, 100)
    messages += build_topic_rounds("infra", rounds, 200)
    if query is not None:
        messages.append({"role": "user", "content": query})
    return messages


@pytest.fixture
def conversation():
    return build_conversation
