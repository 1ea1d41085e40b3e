"""Running totals of compaction outcomes."""

from dataclasses import asdict, dataclass, field


@dataclass
class ContextMetrics:
    """Counters accumulated across ``ContextManager.apply`` calls."""

    total_runs: int = 0
    applied_runs: int = 0
    total_tokens_before: int = 0
    total_tokens_after: int = 0
    total_savings: int = 0
    fallback_events: int = 0
    truncations: int = 0
    layer_counts: dict[str, int] = field(default_factory=lambda: {"L0": 0, "L1": 0, "L2": 0})

    def record(
        self,
        applied: bool,
        layer: str,
        before: int,
        after: int,
        fallback_events: int = 0,
        truncated: int = 0,
    ) -> None:
        self.total_runs += 1
        if applied:
            self.applied_runs += 1
        self.total_tokens_before += before
        self.total_tokens_after += after
        self.total_savings += before - after
        self.fallback_events += fallback_events
        if truncated:
            self.truncations += 1
        self.layer_counts[layer] = self.layer_counts.get(layer, 0) + 1

    @property
    def avg_savings_ratio(self) -> float:
        if self.total_tokens_before <= 0:
            return 0.0
        return self.total_savings / self.total_tokens_before

    def snapshot(self) -> dict:
        data = asdict(self)
        data["avg_savings_ratio"] = round(self.avg_savings_ratio, 4)
        return data

    def reset(self) -> None:
        fresh = ContextMetrics()
        self.__dict__.update(fresh.__dict__)
