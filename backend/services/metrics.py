"""Upstream call counters shared by the fetching services."""

from dataclasses import dataclass


@dataclass
class ServiceMetrics:
    api_calls: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    timed_calls: int = 0

    def record_call(self, latency_ms: float, success: bool = True) -> None:
        self.api_calls += 1
        self.timed_calls += 1
        self.total_latency_ms += max(0.0, latency_ms)
        if not success:
            self.errors += 1

    def record_error(self) -> None:
        self.errors += 1

    @property
    def average_latency_ms(self) -> float:
        if not self.timed_calls:
            return 0.0
        return self.total_latency_ms / self.timed_calls

    def snapshot(self) -> dict:
        return {
            "api_calls": self.api_calls,
            "errors": self.errors,
            "average_latency_ms": round(self.average_latency_ms, 2),
        }
