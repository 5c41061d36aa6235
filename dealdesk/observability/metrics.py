from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(slots=True)
class RuntimeMetrics:
    inferences_total: int = 0
    inference_errors_total: int = 0
    orchestrations_total: int = 0
    round_limit_exceeded_total: int = 0
    tool_errors_total: int = 0
    tool_calls_total: Dict[str, int] = field(default_factory=dict)

    def increment_tool_call(self, tool_name: str) -> None:
        self.tool_calls_total[tool_name] = self.tool_calls_total.get(tool_name, 0) + 1

    def snapshot(self) -> dict:
        return {
            "inferences_total": self.inferences_total,
            "inference_errors_total": self.inference_errors_total,
            "orchestrations_total": self.orchestrations_total,
            "round_limit_exceeded_total": self.round_limit_exceeded_total,
            "tool_errors_total": self.tool_errors_total,
            "tool_calls_total": dict(self.tool_calls_total),
        }

    def reset(self) -> None:
        self.inferences_total = 0
        self.inference_errors_total = 0
        self.orchestrations_total = 0
        self.round_limit_exceeded_total = 0
        self.tool_errors_total = 0
        self.tool_calls_total.clear()


_runtime_metrics = RuntimeMetrics()


def get_runtime_metrics() -> RuntimeMetrics:
    return _runtime_metrics
