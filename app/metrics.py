from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any


@dataclass
class MetricsCollector:
    counters: Counter[str] = field(default_factory=Counter)
    latencies_ms: list[int] = field(default_factory=list)

    def increment(self, name: str, value: int = 1) -> None:
        self.counters[name] += value

    def observe_latency(self, value_ms: int) -> None:
        self.latencies_ms.append(value_ms)

    def snapshot(self) -> dict[str, Any]:
        p95 = 0
        avg = 0
        if self.latencies_ms:
            ordered = sorted(self.latencies_ms)
            idx = int(0.95 * (len(ordered) - 1))
            p95 = ordered[idx]
            avg = round(sum(ordered) / len(ordered))
        return {
            "uploads_total": self.counters.get("uploads_total", 0),
            "success_total": self.counters.get("extractions_success_total", 0),
            "failure_total": self.counters.get("extractions_failed_total", 0),
            "exports_total": self.counters.get("exports_total", 0),
            "extraction_latency_p95_ms": p95,
            "extraction_latency_avg_ms": avg,
        }
